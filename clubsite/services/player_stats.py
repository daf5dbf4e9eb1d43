"""Public per-player statistics with a lazily rebuilt cache document."""

from __future__ import annotations

import time
from typing import Any

from flask import current_app

from clubsite.models import Player, Season
from clubsite.models.documents import PLAYER_STATS_CACHE_VERSION, PlayerStatsCache
from clubsite.services.docstore import DocumentStore, get_store
from clubsite.services.identity import ResolveMode, require_club
from clubsite.services.lifecycle import stats_cache_ref
from clubsite.services.season import to_slash_form

STAT_FIELDS = ("matches", "minutes", "goals", "assists", "yellowCards", "redCards")


def _now_ms() -> int:
    return int(time.time() * 1000)


def find_player(store: DocumentStore, owner_uid: str, player_id: str) -> Player | None:
    teams = store.collection("clubs").document(owner_uid).collection("teams").stream()
    for team in teams:
        snapshot = team.reference.collection("players").document(player_id).get()
        if snapshot.exists:
            return Player.from_snapshot(snapshot)
    return None


def _empty_totals() -> dict[str, int | float]:
    return {name: 0 for name in STAT_FIELDS}


def summarize_season(entry: dict[str, Any]) -> dict[str, int | float]:
    """Sum the per-competition rows stored under one ``seasonData`` entry."""
    totals = _empty_totals()
    rows = entry.get("manualCompetitionStats")
    if not isinstance(rows, list):
        return totals
    for row in rows:
        if not isinstance(row, dict):
            continue
        for name in STAT_FIELDS:
            value = row.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                totals[name] += value
    return totals


def compute_player_stats(store: DocumentStore, owner_uid: str, player: Player) -> dict[str, Any]:
    existing = {
        to_slash_form(Season.from_snapshot(snap).id)
        for snap in store.collection("clubs").document(owner_uid).collection("seasons").stream()
    }

    per_season: dict[str, dict[str, int | float]] = {}
    for key, entry in player.season_data.items():
        label = to_slash_form(key.strip())
        # seasons deleted since the data was written no longer count
        if label not in existing:
            continue
        season_totals = per_season.setdefault(label, _empty_totals())
        for name, value in summarize_season(entry).items():
            season_totals[name] += value

    totals = _empty_totals()
    for season_totals in per_season.values():
        for name, value in season_totals.items():
            totals[name] += value

    return {
        "player": player.to_dict(),
        "totals": totals,
        "seasonSummaries": [
            {"season": label, **per_season[label]}
            for label in sorted(per_season, reverse=True)
        ],
    }


def get_public_player_stats(identifier: str, player_id: str, store: DocumentStore | None = None) -> dict[str, Any] | None:
    """Return cached stats when fresh, otherwise rebuild and store them.

    None means the player does not exist or is hidden from the public site.
    """
    store = store or get_store()
    club = require_club(identifier, mode=ResolveMode.PUBLIC, store=store)
    cache_ref = stats_cache_ref(store, club.owner_uid, player_id)
    ttl_ms = int(current_app.config.get("PLAYER_STATS_CACHE_TTL_SECONDS", 300)) * 1000

    now_ms = _now_ms()
    cached = PlayerStatsCache.from_snapshot(cache_ref.get())
    if cached is not None and cached.is_fresh(now_ms, ttl_ms):
        return cached.payload

    player = find_player(store, club.owner_uid, player_id)
    if player is None or not player.is_published:
        return None

    payload = compute_player_stats(store, club.owner_uid, player)
    cache_ref.set(
        {
            "cacheVersion": PLAYER_STATS_CACHE_VERSION,
            "cachedAtMs": now_ms,
            "payload": payload,
        }
    )
    return payload


__all__ = [
    "STAT_FIELDS",
    "compute_player_stats",
    "find_player",
    "get_public_player_stats",
    "summarize_season",
]
