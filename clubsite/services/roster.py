"""Teams, players, seasons and season rosters of one club."""

from __future__ import annotations

from typing import Any, Mapping

from flask import current_app

from clubsite.errors import ConflictError, NotFoundError, ValidationError
from clubsite.models import Player, RosterEntry, Season, Team, plan_limit
from clubsite.services.docstore import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    DocumentReference,
    DocumentStore,
    FieldPath,
    get_store,
)
from clubsite.services.identity import ResolvedClub
from clubsite.services.lifecycle import invalidate_player_stats_cache
from clubsite.services.season import is_season_key, season_keys


def _club_ref(store: DocumentStore, owner_uid: str) -> DocumentReference:
    return store.collection('clubs').document(owner_uid)


def require_season_key(season: Any) -> tuple[str, str]:
    """Return ``(dash, slash)`` keys or raise ValidationError for unknown spellings."""
    if not isinstance(season, str) or not is_season_key(season.strip()):
        raise ValidationError("season must look like 2024/25 or 2024-25", field='season')
    return season_keys(season.strip())


# ==== TEAMS ====

def list_teams(club: ResolvedClub, store: DocumentStore | None = None) -> list[Team]:
    store = store or get_store()
    teams = [Team.from_snapshot(snap) for snap in _club_ref(store, club.owner_uid).collection('teams').stream()]
    return sorted(teams, key=lambda team: team.name.lower())


def create_team(club: ResolvedClub, body: Mapping[str, Any], store: DocumentStore | None = None) -> Team:
    store = store or get_store()
    name = body.get('name')
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required", field='name')
    payload: dict[str, Any] = {'name': name.strip(), 'createdAt': SERVER_TIMESTAMP}
    if isinstance(body.get('logoUrl'), str) and body['logoUrl']:
        payload['logoUrl'] = body['logoUrl']
    ref = _club_ref(store, club.owner_uid).collection('teams').document()
    ref.create(payload)
    return Team.from_snapshot(ref.get())


def _team_ref(store: DocumentStore, club: ResolvedClub, team_id: str) -> DocumentReference:
    ref = _club_ref(store, club.owner_uid).collection('teams').document(team_id)
    if not ref.get().exists:
        raise NotFoundError("Team not found")
    return ref


# ==== PLAYERS ====

def _player_payload(body: Mapping[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in ('name', 'position', 'photoUrl'):
        if isinstance(body.get(key), str):
            payload[key] = body[key].strip()
    if isinstance(body.get('isPublished'), bool):
        payload['isPublished'] = body['isPublished']
    number = body.get('number')
    if isinstance(number, int) and not isinstance(number, bool):
        payload['number'] = number
    elif number is None and 'number' in body:
        payload['number'] = None
    return payload


def list_players(club: ResolvedClub, team_id: str, store: DocumentStore | None = None) -> list[Player]:
    store = store or get_store()
    team_ref = _team_ref(store, club, team_id)
    return [Player.from_snapshot(snap) for snap in team_ref.collection('players').stream()]


def create_player(
    club: ResolvedClub,
    team_id: str,
    body: Mapping[str, Any],
    store: DocumentStore | None = None,
) -> Player:
    """Create a player under a team, enforcing the per-plan squad size."""
    store = store or get_store()
    team_ref = _team_ref(store, club, team_id)
    payload = _player_payload(body)
    if not payload.get('name'):
        raise ValidationError("name is required", field='name')

    players = team_ref.collection('players')
    limit = plan_limit('players_per_team', club.profile.plan)
    if len(players.get()) >= limit:
        raise ConflictError(
            f"The {club.profile.plan.value} plan allows at most {int(limit)} players per team"
        )

    payload.setdefault('isPublished', True)
    payload.update({'seasons': [], 'seasonData': {}, 'createdAt': SERVER_TIMESTAMP})
    ref = players.document()
    ref.create(payload)
    invalidate_player_stats_cache(club.owner_uid, ref.id, store=store)
    return Player.from_snapshot(ref.get())


def update_player(
    club: ResolvedClub,
    team_id: str,
    player_id: str,
    body: Mapping[str, Any],
    store: DocumentStore | None = None,
) -> Player:
    store = store or get_store()
    ref = _team_ref(store, club, team_id).collection('players').document(player_id)
    if not ref.get().exists:
        raise NotFoundError("Player not found")

    fields: dict[Any, Any] = dict(_player_payload(body))
    season_data = body.get('seasonData')
    if isinstance(season_data, Mapping):
        for season, entry in season_data.items():
            dash_key, _ = require_season_key(season)
            if not isinstance(entry, Mapping):
                raise ValidationError("seasonData entries must be objects", field='seasonData')
            fields[FieldPath('seasonData', dash_key)] = dict(entry)
    if not fields:
        raise ValidationError("Nothing to update")

    ref.update(fields)
    invalidate_player_stats_cache(club.owner_uid, player_id, store=store)
    return Player.from_snapshot(ref.get())


def delete_player(club: ResolvedClub, team_id: str, player_id: str, store: DocumentStore | None = None) -> bool:
    """Delete a player document. Roster entries pointing at it become orphans."""
    store = store or get_store()
    ref = _team_ref(store, club, team_id).collection('players').document(player_id)
    if not ref.get().exists:
        return False
    ref.delete()
    invalidate_player_stats_cache(club.owner_uid, player_id, store=store)
    return True


# ==== SEASONS ====

def list_seasons(club: ResolvedClub, store: DocumentStore | None = None) -> list[Season]:
    store = store or get_store()
    seasons = [Season.from_snapshot(snap) for snap in _club_ref(store, club.owner_uid).collection('seasons').stream()]
    return sorted(seasons, key=lambda season: season.id, reverse=True)


def create_season(club: ResolvedClub, season: Any, store: DocumentStore | None = None) -> tuple[Season, bool]:
    """
    Create a season keyed by its dash form.

    Returns:
        (season, created) where ``created`` is False when it already existed
    """
    store = store or get_store()
    dash_key, slash_key = require_season_key(season)
    ref = _club_ref(store, club.owner_uid).collection('seasons').document(dash_key)
    snapshot = ref.get()
    if snapshot.exists:
        return Season.from_snapshot(snapshot), False
    ref.set({'label': slash_key, 'createdAt': SERVER_TIMESTAMP})
    current_app.logger.info(f"Created season {dash_key} for club {club.owner_uid}")
    return Season.from_snapshot(ref.get()), True


def _season_ref(store: DocumentStore, club: ResolvedClub, season: Any) -> tuple[DocumentReference, str]:
    dash_key, _ = require_season_key(season)
    ref = _club_ref(store, club.owner_uid).collection('seasons').document(dash_key)
    if not ref.get().exists:
        raise NotFoundError("Season not found")
    return ref, dash_key


# ==== ROSTER ====

def list_roster(club: ResolvedClub, season: Any, store: DocumentStore | None = None) -> list[RosterEntry]:
    store = store or get_store()
    season_ref, _ = _season_ref(store, club, season)
    return [RosterEntry.from_snapshot(snap) for snap in season_ref.collection('roster').stream()]


def add_to_roster(
    club: ResolvedClub,
    season: Any,
    team_id: str,
    player_id: str,
    store: DocumentStore | None = None,
) -> RosterEntry:
    """Put a player on a season's roster and record the season on the player."""
    store = store or get_store()
    season_ref, dash_key = _season_ref(store, club, season)
    player_ref = _team_ref(store, club, team_id).collection('players').document(player_id)
    snapshot = player_ref.get()
    if not snapshot.exists:
        raise NotFoundError("Player not found")
    player = Player.from_snapshot(snapshot)

    roster_ref = season_ref.collection('roster').document(player_id)
    player_fields: dict[Any, Any] = {'seasons': ArrayUnion(dash_key)}
    if dash_key not in player.season_data:
        player_fields[FieldPath('seasonData', dash_key)] = {}

    batch = store.batch()
    batch.set(
        roster_ref,
        {'teamId': team_id, 'name': player.name, 'number': player.number, 'position': player.position},
        merge=True,
    )
    batch.update(player_ref, player_fields)
    batch.commit()

    invalidate_player_stats_cache(club.owner_uid, player_id, store=store)
    return RosterEntry.from_snapshot(roster_ref.get())


def remove_from_roster(
    club: ResolvedClub,
    season: Any,
    player_id: str,
    store: DocumentStore | None = None,
) -> bool:
    """Drop a player from a season's roster along with their data for that season."""
    store = store or get_store()
    season_ref, dash_key = _season_ref(store, club, season)
    dash_key, slash_key = season_keys(dash_key)
    roster_ref = season_ref.collection('roster').document(player_id)
    entry = roster_ref.get()
    if not entry.exists:
        return False

    batch = store.batch()
    batch.delete(roster_ref)
    team_id = RosterEntry.from_snapshot(entry).team_id
    if team_id:
        player_ref = _club_ref(store, club.owner_uid).collection('teams').document(team_id).collection('players').document(player_id)
        if player_ref.get().exists:
            batch.update(
                player_ref,
                {
                    FieldPath('seasonData', dash_key): DELETE_FIELD,
                    FieldPath('seasonData', slash_key): DELETE_FIELD,
                    'seasons': ArrayRemove(dash_key, slash_key),
                },
            )
    batch.commit()

    invalidate_player_stats_cache(club.owner_uid, player_id, store=store)
    return True


__all__ = [
    'require_season_key',
    'list_teams',
    'create_team',
    'list_players',
    'create_player',
    'update_player',
    'delete_player',
    'list_seasons',
    'create_season',
    'list_roster',
    'add_to_roster',
    'remove_from_roster',
]
