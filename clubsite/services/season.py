"""Season identifier normalization.

Seasons circulate in two spellings: the display ("slash") form ``2024/25`` and
the storage ("dash") form ``2024-25``, because ``/`` cannot appear inside a
document path segment. Four-digit trailing years are shortened to two digits.
Strings that match neither spelling are returned unchanged.
"""

from __future__ import annotations

import re

_SEASON_RE = re.compile(r"^(\d{4})([-/])(\d{2}|\d{4})$")


def _parts(season: str) -> tuple[str, str] | None:
    if not isinstance(season, str):
        return None
    match = _SEASON_RE.match(season)
    if not match:
        return None
    start, _, end = match.groups()
    return start, end[-2:]


def to_slash_form(season: str) -> str:
    parts = _parts(season)
    if parts is None:
        return season
    return f"{parts[0]}/{parts[1]}"


def to_dash_form(season: str) -> str:
    parts = _parts(season)
    if parts is None:
        return season
    return f"{parts[0]}-{parts[1]}"


def is_season_key(season: str) -> bool:
    """True when ``season`` is one of the recognized spellings."""
    return _parts(season) is not None


def season_keys(season: str) -> tuple[str, str]:
    """Return ``(dash_form, slash_form)`` for ``season``."""
    return to_dash_form(season), to_slash_form(season)


def seasons_equal(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a == b or to_dash_form(a) == to_dash_form(b)


__all__ = ["to_slash_form", "to_dash_form", "is_season_key", "season_keys", "seasons_equal"]
