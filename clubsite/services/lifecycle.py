"""Season, roster and public match index lifecycle operations.

These mutations fan out across denormalized copies (roster entries, the
players' embedded ``seasonData``/``seasons`` fields, the public stats cache,
the flat public match index).
Writes are grouped in chunks that each commit atomically; a failure in a later
chunk leaves earlier chunks applied. Every individual write is idempotent, so
the remedy for a failure is to run the whole operation again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Sequence, TypeVar

from flask import current_app, has_app_context

from clubsite.services.docstore import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    DocumentReference,
    DocumentStore,
    FieldPath,
    WriteBatch,
    get_store,
)
from clubsite.services.season import season_keys

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 450

T = TypeVar("T")
Operation = Callable[[WriteBatch], None]


@dataclass
class SeasonDeletionResult:
    season_id: str
    roster_entries_deleted: int
    players_updated: int
    caches_invalidated: int
    batches_committed: int

    def to_dict(self) -> dict:
        return {
            "seasonId": self.season_id,
            "rosterEntriesDeleted": self.roster_entries_deleted,
            "playersUpdated": self.players_updated,
            "cachesInvalidated": self.caches_invalidated,
            "batchesCommitted": self.batches_committed,
        }


@dataclass
class RosterCleanupResult:
    season_id: str
    deleted_roster_count: int
    removed_player_ids: list[str]
    batches_committed: int


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _chunk_size(chunk_size: int | None) -> int:
    if chunk_size is not None:
        return chunk_size
    if has_app_context():
        return int(current_app.config.get("BATCH_CHUNK_SIZE", DEFAULT_CHUNK_SIZE))
    return DEFAULT_CHUNK_SIZE


def commit_in_batches(
    store: DocumentStore,
    operations: Sequence[Operation],
    chunk_size: int | None = None,
    label: str = "batch",
) -> int:
    """Apply ``operations`` in order, one write batch per chunk.

    Returns the number of batches committed.
    """
    size = _chunk_size(chunk_size)
    committed = 0
    for chunk in chunked(operations, size):
        batch = store.batch()
        for operation in chunk:
            operation(batch)
        batch.commit()
        committed += 1
        logger.info("%s: committed chunk %d (%d operations)", label, committed, len(chunk))
    return committed


def _club(store: DocumentStore, owner_uid: str) -> DocumentReference:
    return store.collection("clubs").document(owner_uid)


def stats_cache_ref(store: DocumentStore, owner_uid: str, player_id: str) -> DocumentReference:
    return _club(store, owner_uid).collection("public_player_stats_cache").document(player_id)


def _existing_players(
    store: DocumentStore, owner_uid: str, player_ids: Iterable[str]
) -> list[DocumentReference]:
    """References of every player document, across all teams, whose id is in ``player_ids``."""
    player_ids = list(player_ids)
    if not player_ids:
        return []
    found: list[DocumentReference] = []
    for team in _club(store, owner_uid).collection("teams").stream():
        players = team.reference.collection("players")
        snapshots = store.get_all(players.document(pid) for pid in player_ids)
        found.extend(snap.reference for snap in snapshots if snap.exists)
    return found


def delete_season(
    owner_uid: str,
    season: str,
    store: DocumentStore | None = None,
    chunk_size: int | None = None,
) -> SeasonDeletionResult:
    """Delete a season with its roster, embedded player data and stats caches.

    Running this against an already deleted season is a no-op.
    """
    store = store or get_store()
    dash_key, slash_key = season_keys(season)
    season_ref = _club(store, owner_uid).collection("seasons").document(dash_key)

    roster = season_ref.collection("roster").get()
    player_ids = [entry.id for entry in roster]

    player_refs = _existing_players(store, owner_uid, player_ids)
    refs_by_id: dict[str, list[DocumentReference]] = {}
    for player_ref in player_refs:
        refs_by_id.setdefault(player_ref.id, []).append(player_ref)

    # A cache delete never commits after its roster entry is gone
    operations: list[Operation] = []
    for entry in roster:
        for player_ref in refs_by_id.get(entry.id, []):
            operations.append(
                lambda b, ref=player_ref: b.update(
                    ref,
                    {
                        FieldPath("seasonData", dash_key): DELETE_FIELD,
                        FieldPath("seasonData", slash_key): DELETE_FIELD,
                        "seasons": ArrayRemove(slash_key, dash_key),
                    },
                )
            )
        cache_ref = stats_cache_ref(store, owner_uid, entry.id)
        operations.append(lambda b, ref=cache_ref: b.delete(ref))
        operations.append(lambda b, ref=entry.reference: b.delete(ref))

    operations.append(lambda b: b.delete(season_ref))

    batches = commit_in_batches(store, operations, chunk_size, label=f"delete-season {owner_uid}/{dash_key}")
    return SeasonDeletionResult(
        season_id=dash_key,
        roster_entries_deleted=len(roster),
        players_updated=len(player_refs),
        caches_invalidated=len(player_ids),
        batches_committed=batches,
    )


def find_orphaned_roster_entries(
    owner_uid: str, season: str, store: DocumentStore | None = None
) -> list[DocumentReference]:
    """Roster entries whose player exists under none of the club's teams."""
    store = store or get_store()
    dash_key, _ = season_keys(season)
    roster = _club(store, owner_uid).collection("seasons").document(dash_key).collection("roster").get()
    if not roster:
        return []
    present = {ref.id for ref in _existing_players(store, owner_uid, [entry.id for entry in roster])}
    return [entry.reference for entry in roster if entry.id not in present]


def cleanup_roster(
    owner_uid: str,
    season: str,
    store: DocumentStore | None = None,
    chunk_size: int | None = None,
) -> RosterCleanupResult:
    store = store or get_store()
    dash_key, _ = season_keys(season)
    orphaned = find_orphaned_roster_entries(owner_uid, dash_key, store=store)

    operations: list[Operation] = []
    for ref in orphaned:
        cache_ref = stats_cache_ref(store, owner_uid, ref.id)
        operations.append(lambda b, ref=cache_ref: b.delete(ref))
        operations.append(lambda b, ref=ref: b.delete(ref))

    batches = commit_in_batches(store, operations, chunk_size, label=f"cleanup-roster {owner_uid}/{dash_key}")
    return RosterCleanupResult(
        season_id=dash_key,
        deleted_roster_count=len(orphaned),
        removed_player_ids=[ref.id for ref in orphaned],
        batches_committed=batches,
    )


def invalidate_player_stats_cache(owner_uid: str, player_id: str, store: DocumentStore | None = None) -> None:
    """Drop the cached public stats for one player; missing caches are fine."""
    store = store or get_store()
    stats_cache_ref(store, owner_uid, player_id).delete()


MATCH_INDEX = "public_match_index"
MATCH_INDEX_META = "_meta"
FRIENDLY_COMPETITIONS = {"practice": "Practice match", "friendly": "Friendly"}


@dataclass
class MatchIndexBackfillResult:
    owner_uid: str
    already_indexed: bool
    rows_written: int
    batches_committed: int

    def to_dict(self) -> dict:
        return {
            "message": "already" if self.already_indexed else "ok",
            "count": self.rows_written,
            "batchesCommitted": self.batches_committed,
        }


def normalize_match_date(value: Any) -> str:
    """Calendar date (``YYYY-MM-DD``) of a match, or an empty string."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        return ""
    value = value.strip()
    if "T" in value:
        # stored datetimes come back as ISO strings
        try:
            return normalize_match_date(datetime.fromisoformat(value))
        except ValueError:
            return value
    return value


def _score(value: Any) -> Any:
    return None if value is None or value == "" else value


def _compact(row: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in row.items() if value is not None or key in ("scoreHome", "scoreAway")}


def _team_lookup(store: DocumentStore, owner_uid: str) -> dict[str, dict[str, Any]]:
    return {snap.id: snap.to_dict() or {} for snap in _club(store, owner_uid).collection("teams").stream()}


def _league_rows(store: DocumentStore, owner_uid: str, teams: dict[str, dict]) -> list[dict[str, Any]]:
    rows = []
    for competition in _club(store, owner_uid).collection("competitions").stream():
        competition_data = competition.to_dict() or {}
        for round_ in competition.reference.collection("rounds").stream():
            round_data = round_.to_dict() or {}
            for match in round_.reference.collection("matches").stream():
                data = match.to_dict() or {}
                home = teams.get(data.get("homeTeam"), {})
                away = teams.get(data.get("awayTeam"), {})
                rows.append(_compact({
                    "matchId": match.id,
                    "competitionId": competition.id,
                    "roundId": round_.id,
                    "matchDate": normalize_match_date(data.get("matchDate")),
                    "matchTime": data.get("matchTime") if isinstance(data.get("matchTime"), str) else None,
                    "competitionName": competition_data.get("name"),
                    "roundName": round_data.get("name"),
                    "homeTeam": data.get("homeTeam"),
                    "awayTeam": data.get("awayTeam"),
                    "homeTeamName": home.get("name") or data.get("homeTeamName"),
                    "awayTeamName": away.get("name") or data.get("awayTeamName"),
                    "homeTeamLogo": home.get("logoUrl") or data.get("homeTeamLogo"),
                    "awayTeamLogo": away.get("logoUrl") or data.get("awayTeamLogo"),
                    "scoreHome": _score(data.get("scoreHome")),
                    "scoreAway": _score(data.get("scoreAway")),
                }))
    return rows


def _friendly_rows(store: DocumentStore, owner_uid: str, teams: dict[str, dict]) -> list[dict[str, Any]]:
    rows = []
    for match in _club(store, owner_uid).collection("friendly_matches").stream():
        data = match.to_dict() or {}
        competition_id = "practice" if data.get("competitionId") == "practice" else "friendly"
        home = teams.get(data.get("homeTeam"), {})
        away = teams.get(data.get("awayTeam"), {})
        # a friendly's own names win over the team documents
        rows.append(_compact({
            "matchId": match.id,
            "competitionId": competition_id,
            "roundId": "single",
            "matchDate": normalize_match_date(data.get("matchDate")),
            "matchTime": data.get("matchTime") if isinstance(data.get("matchTime"), str) else None,
            "competitionName": data.get("competitionName") or FRIENDLY_COMPETITIONS[competition_id],
            "roundName": data.get("roundName") or "Single match",
            "homeTeam": data.get("homeTeam"),
            "awayTeam": data.get("awayTeam"),
            "homeTeamName": data.get("homeTeamName") or home.get("name"),
            "awayTeamName": data.get("awayTeamName") or away.get("name"),
            "homeTeamLogo": data.get("homeTeamLogo") or home.get("logoUrl"),
            "awayTeamLogo": data.get("awayTeamLogo") or away.get("logoUrl"),
            "scoreHome": _score(data.get("scoreHome")),
            "scoreAway": _score(data.get("scoreAway")),
        }))
    return rows


def match_index_row_id(row: dict[str, Any]) -> str:
    return f"{row['competitionId']}__{row['roundId']}__{row['matchId']}"


def has_match_index(owner_uid: str, store: DocumentStore | None = None) -> bool:
    """True when a completed backfill left at least one row in the index.

    The meta document is written last, so rows without it are the remains of
    an interrupted run.
    """
    store = store or get_store()
    index = _club(store, owner_uid).collection(MATCH_INDEX)
    if not index.document(MATCH_INDEX_META).get().exists:
        return False
    return any(snap.id != MATCH_INDEX_META for snap in index.limit(2).get())


def backfill_public_match_index(
    owner_uid: str,
    store: DocumentStore | None = None,
    chunk_size: int | None = None,
    force: bool = False,
) -> MatchIndexBackfillResult:
    """Build the flat public match index from competition and friendly matches.

    An index that already has rows is left alone unless ``force`` is set.
    Rows are merged by ``competition__round__match`` id, so a rerun after a
    partial failure converges on the same index. The meta document is written
    last.
    """
    store = store or get_store()
    if not force and has_match_index(owner_uid, store=store):
        return MatchIndexBackfillResult(owner_uid, already_indexed=True, rows_written=0, batches_committed=0)

    teams = _team_lookup(store, owner_uid)
    rows = [
        row
        for row in _league_rows(store, owner_uid, teams) + _friendly_rows(store, owner_uid, teams)
        if row["matchDate"]
    ]

    index = _club(store, owner_uid).collection(MATCH_INDEX)
    operations: list[Operation] = [
        lambda b, ref=index.document(match_index_row_id(row)), row=row: b.set(ref, row, merge=True)
        for row in rows
    ]
    operations.append(
        lambda b: b.set(
            index.document(MATCH_INDEX_META),
            {"updatedAt": SERVER_TIMESTAMP, "count": len(rows)},
            merge=True,
        )
    )
    batches = commit_in_batches(store, operations, chunk_size, label=f"backfill-match-index {owner_uid}")
    return MatchIndexBackfillResult(
        owner_uid, already_indexed=False, rows_written=len(rows), batches_committed=batches
    )


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "MATCH_INDEX",
    "MATCH_INDEX_META",
    "MatchIndexBackfillResult",
    "RosterCleanupResult",
    "SeasonDeletionResult",
    "backfill_public_match_index",
    "chunked",
    "cleanup_roster",
    "commit_in_batches",
    "delete_season",
    "find_orphaned_roster_entries",
    "has_match_index",
    "invalidate_player_stats_cache",
    "match_index_row_id",
    "normalize_match_date",
    "stats_cache_ref",
]
