"""Public league table for one competition.

Manually saved rows under ``competitions/{id}/standings`` win. Without them
the table is computed from every scored match of the competition's rounds.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable

from clubsite.errors import NotFoundError, ValidationError
from clubsite.services.docstore import DocumentStore, get_store
from clubsite.services.identity import ResolveMode, require_club

RANK_LABEL_COLORS = ("green", "red", "orange", "blue", "yellow")
POINTS_FOR_WIN = 3
POINTS_FOR_DRAW = 1
NO_TEAMS_MESSAGE = "No participating teams are set for this competition"

# league rounds of a league_cup competition are named like "第3節"
LEAGUE_ROUND_NAME = re.compile(r"^第\s*\d+\s*節$")


@dataclass
class Standing:
    id: str
    team_name: str
    logo_url: str | None = None
    rank: int = 0
    played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rank": self.rank,
            "teamName": self.team_name,
            "logoUrl": self.logo_url,
            "played": self.played,
            "wins": self.wins,
            "draws": self.draws,
            "losses": self.losses,
            "goalsFor": self.goals_for,
            "goalsAgainst": self.goals_against,
            "goalDifference": self.goal_difference,
            "points": self.points,
        }


@dataclass
class RankLabel:
    start: int
    end: int
    color: str

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.start, "to": self.end, "color": self.color}


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _int_or(value: Any, default: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


def parse_rank_labels(raw: Any) -> list[RankLabel]:
    """Valid colour bands only: positive, ordered bounds and a known colour."""
    if not isinstance(raw, list):
        return []
    labels = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        start, end = _number(item.get("from")), _number(item.get("to"))
        color = item.get("color")
        if start is None or end is None or color not in RANK_LABEL_COLORS:
            continue
        if 0 < start <= end:
            labels.append(RankLabel(int(start), int(end), color))
    return labels


def is_league_round_name(name: Any) -> bool:
    return isinstance(name, str) and bool(LEAGUE_ROUND_NAME.match(name.strip()))


def _standing_sort_key(standing: Standing) -> tuple:
    return (-standing.points, -standing.goal_difference, -standing.goals_for, standing.team_name.lower())


def compute_standings(
    team_ids: Iterable[str],
    teams: dict[str, dict[str, Any]],
    matches: Iterable[dict[str, Any]],
) -> list[Standing]:
    """Rank ``team_ids`` by points, goal difference, goals scored, then name.

    Matches without both scores are skipped; a side that is not a
    participating team is ignored.
    """
    table: dict[str, Standing] = {}
    for team_id in team_ids:
        team = teams.get(team_id, {})
        table[team_id] = Standing(
            id=team_id,
            team_name=team.get("name") or "Unknown Team",
            logo_url=team.get("logoUrl") or None,
        )

    for match in matches:
        home_score = _number(match.get("scoreHome"))
        away_score = _number(match.get("scoreAway"))
        if home_score is None or away_score is None:
            continue
        for side, scored, conceded in (
            (match.get("homeTeam"), home_score, away_score),
            (match.get("awayTeam"), away_score, home_score),
        ):
            standing = table.get(side)
            if standing is None:
                continue
            standing.played += 1
            standing.goals_for += int(scored)
            standing.goals_against += int(conceded)
            if scored > conceded:
                standing.wins += 1
            elif scored < conceded:
                standing.losses += 1
            else:
                standing.draws += 1

    for standing in table.values():
        standing.points = standing.wins * POINTS_FOR_WIN + standing.draws * POINTS_FOR_DRAW
        standing.goal_difference = standing.goals_for - standing.goals_against

    ranked = sorted(table.values(), key=_standing_sort_key)
    for rank, standing in enumerate(ranked, start=1):
        standing.rank = rank
    return ranked


def _saved_standing(snapshot, teams: dict[str, dict[str, Any]]) -> Standing:
    data = snapshot.to_dict() or {}
    team = teams.get(snapshot.id, {})
    wins = _int_or(data.get("wins"))
    draws = _int_or(data.get("draws"))
    goals_for = _int_or(data.get("goalsFor"))
    goals_against = _int_or(data.get("goalsAgainst"))
    return Standing(
        id=snapshot.id,
        team_name=team.get("name") or data.get("teamName") or "Unknown Team",
        logo_url=team.get("logoUrl") or None,
        rank=_int_or(data.get("rank")),
        played=_int_or(data.get("played")),
        wins=wins,
        draws=draws,
        losses=_int_or(data.get("losses")),
        goals_for=goals_for,
        goals_against=goals_against,
        goal_difference=_int_or(data.get("goalDifference"), goals_for - goals_against),
        points=_int_or(data.get("points"), wins * POINTS_FOR_WIN + draws * POINTS_FOR_DRAW),
    )


def get_public_standings(
    identifier: str,
    competition_id: str | None,
    store: DocumentStore | None = None,
) -> dict[str, Any]:
    if not competition_id:
        raise ValidationError("competitionId is required", field="competitionId")
    store = store or get_store()
    club = require_club(identifier, mode=ResolveMode.PUBLIC, store=store)
    club_root = store.collection("clubs").document(club.owner_uid)

    if "/" in competition_id:
        raise NotFoundError("Competition not found")
    competition_ref = club_root.collection("competitions").document(competition_id)
    competition = competition_ref.get()
    if not competition.exists:
        raise NotFoundError("Competition not found")
    data = competition.to_dict() or {}

    teams = {snap.id: snap.to_dict() or {} for snap in club_root.collection("teams").stream()}
    payload: dict[str, Any] = {
        "selectedCompetition": {"name": data.get("name") or "", "logoUrl": data.get("logoUrl") or None},
        "rankLabels": [label.to_dict() for label in parse_rank_labels(data.get("rankLabels"))],
    }

    team_ids = data.get("teams")
    team_ids = [team_id for team_id in team_ids if isinstance(team_id, str)] if isinstance(team_ids, list) else []
    if not team_ids:
        payload.update(standings=[], errorMessage=NO_TEAMS_MESSAGE)
        return payload

    saved = competition_ref.collection("standings").get()
    if saved:
        standings = sorted((_saved_standing(snap, teams) for snap in saved), key=lambda s: s.rank)
        payload["standings"] = [standing.to_dict() for standing in standings]
        return payload

    rounds = competition_ref.collection("rounds").get()
    if data.get("format") == "league_cup":
        rounds = [round_ for round_ in rounds if is_league_round_name((round_.to_dict() or {}).get("name"))]
    matches = [
        match.to_dict() or {}
        for round_ in rounds
        for match in round_.reference.collection("matches").stream()
    ]
    payload["standings"] = [standing.to_dict() for standing in compute_standings(team_ids, teams, matches)]
    return payload


__all__ = [
    "RANK_LABEL_COLORS",
    "RankLabel",
    "Standing",
    "compute_standings",
    "get_public_standings",
    "is_league_round_name",
    "parse_rank_labels",
]
