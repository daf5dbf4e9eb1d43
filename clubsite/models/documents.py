"""Typed views over the documents of each collection.

Stored payloads are loosely shaped JSON. Every schema coerces at the store
boundary: values of the wrong type fall back to the field default instead of
flowing into the services.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class Plan(Enum):
    FREE = "free"
    PRO = "pro"
    OFFICIA = "officia"

    @classmethod
    def parse(cls, value: Any) -> "Plan":
        raw = value.strip().lower() if isinstance(value, str) else ""
        if raw == "pro":
            return cls.PRO
        # legacy "tm" plan is treated as Officia
        if raw in ("officia", "tm"):
            return cls.OFFICIA
        return cls.FREE

    @property
    def rank(self) -> int:
        return {Plan.FREE: 0, Plan.PRO: 1, Plan.OFFICIA: 2}[self]


_UNLIMITED = math.inf

PLAN_LIMITS: dict[str, dict[Plan, float]] = {
    "news_per_club": {Plan.FREE: 10, Plan.PRO: _UNLIMITED, Plan.OFFICIA: _UNLIMITED},
    "videos_per_club": {Plan.FREE: 10, Plan.PRO: _UNLIMITED, Plan.OFFICIA: _UNLIMITED},
    "competitions_per_club": {Plan.FREE: 1, Plan.PRO: 8, Plan.OFFICIA: _UNLIMITED},
    "players_per_team": {Plan.FREE: 30, Plan.PRO: 30, Plan.OFFICIA: _UNLIMITED},
    "player_photos_per_team": {Plan.FREE: 20, Plan.PRO: 30, Plan.OFFICIA: _UNLIMITED},
    "staff_per_season": {Plan.FREE: 30, Plan.PRO: _UNLIMITED, Plan.OFFICIA: _UNLIMITED},
}


def plan_limit(key: str, plan: Plan) -> float:
    return PLAN_LIMITS[key][plan]


def _str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _opt_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _number(value: Any) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _dict(value: Any) -> dict:
    return dict(value) if isinstance(value, Mapping) else {}


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


MENU_FLAGS = (
    "menuShowNews",
    "menuShowTv",
    "menuShowClub",
    "menuShowTransfers",
    "menuShowMatches",
    "menuShowTable",
    "menuShowStats",
    "menuShowSquad",
    "menuShowPartner",
)

PAGE_KEYS = (
    "playerProfileLatest",
    "resultsPage",
    "topPage",
    "newsPage",
    "tvPage",
    "clubPage",
    "transfersPage",
    "matchesPage",
    "tablePage",
    "statsPage",
    "squadPage",
    "partnerPage",
)


@dataclass
class DisplaySettings:
    menu: dict[str, bool] = field(default_factory=lambda: {flag: True for flag in MENU_FLAGS})
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "DisplaySettings":
        raw = _dict(data)
        # menu entries are shown unless explicitly switched off
        menu = {flag: raw.get(flag) is not False for flag in MENU_FLAGS}
        extra = {k: v for k, v in raw.items() if k not in MENU_FLAGS and isinstance(v, (bool, str))}
        return cls(menu=menu, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        return {**self.extra, **self.menu}


@dataclass
class PartnerCategory:
    id: str
    name: str
    sort_order: float = 0

    @classmethod
    def from_dict(cls, data: Any) -> "PartnerCategory | None":
        raw = _dict(data)
        category_id = _str(raw.get("id")).strip()
        name = _str(raw.get("name")).strip()
        if not category_id or not name:
            return None
        return cls(id=category_id, name=name, sort_order=_number(raw.get("sortOrder")) or 0)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "sortOrder": self.sort_order}


DEFAULT_PARTNER_CATEGORIES = (
    PartnerCategory(id="top", name="Top Partners", sort_order=0),
    PartnerCategory(id="official", name="Official Partners", sort_order=1),
)

# Fields never exposed through public endpoints
PRIVATE_PROFILE_FIELDS = ("stripeCustomerId", "stripeSubscriptionId", "admins")


@dataclass
class ClubProfile:
    doc_id: str
    owner_uid: str
    club_id: str | None = None
    club_name: str | None = None
    logo_url: str | None = None
    main_team_id: str | None = None
    plan: Plan = Plan.FREE
    admins: list[str] = field(default_factory=list)
    transfers_public: bool = True
    directory_listed: bool = False
    hero_news_limit: int | None = None
    display_settings: DisplaySettings = field(default_factory=DisplaySettings)
    partner_categories: list[PartnerCategory] = field(default_factory=list)
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, snapshot) -> "ClubProfile":
        return cls.from_dict(snapshot.id, snapshot.to_dict() or {})

    @classmethod
    def from_dict(cls, doc_id: str, data: Mapping[str, Any]) -> "ClubProfile":
        hero_limit = _number(data.get("heroNewsLimit"))
        categories = [
            category
            for category in (PartnerCategory.from_dict(item) for item in data.get("partnersCategories") or [])
            if category is not None
        ] if isinstance(data.get("partnersCategories"), list) else []
        return cls(
            doc_id=doc_id,
            owner_uid=_opt_str(data.get("ownerUid")) or doc_id,
            club_id=_opt_str(data.get("clubId")),
            club_name=_opt_str(data.get("clubName")),
            logo_url=_opt_str(data.get("logoUrl")),
            main_team_id=_opt_str(data.get("mainTeamId")),
            plan=Plan.parse(data.get("plan")),
            admins=_str_list(data.get("admins")),
            transfers_public=_bool(data.get("transfersPublic"), True),
            directory_listed=_bool(data.get("directoryListed"), False),
            hero_news_limit=int(hero_limit) if hero_limit is not None else None,
            display_settings=DisplaySettings.from_dict(data.get("displaySettings")),
            partner_categories=categories,
            stripe_customer_id=_opt_str(data.get("stripeCustomerId")),
            stripe_subscription_id=_opt_str(data.get("stripeSubscriptionId")),
            raw=dict(data),
        )

    def can_manage(self, uid: str) -> bool:
        return uid == self.owner_uid or uid in self.admins

    def to_public_dict(self) -> dict[str, Any]:
        payload = {k: v for k, v in self.raw.items() if k not in PRIVATE_PROFILE_FIELDS}
        payload.update(
            {
                "clubId": self.club_id,
                "ownerUid": self.owner_uid,
                "clubName": self.club_name,
                "logoUrl": self.logo_url,
                "plan": self.plan.value,
                "displaySettings": self.display_settings.to_dict(),
            }
        )
        return payload


@dataclass
class Team:
    id: str
    name: str = ""
    logo_url: str | None = None

    @classmethod
    def from_snapshot(cls, snapshot) -> "Team":
        data = snapshot.to_dict() or {}
        return cls(id=snapshot.id, name=_str(data.get("name")), logo_url=_opt_str(data.get("logoUrl")))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "logoUrl": self.logo_url}


@dataclass
class Player:
    id: str
    team_id: str
    name: str = ""
    number: int | None = None
    position: str | None = None
    photo_url: str | None = None
    is_published: bool = True
    seasons: list[str] = field(default_factory=list)
    season_data: dict[str, dict] = field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, snapshot) -> "Player":
        data = snapshot.to_dict() or {}
        number = _number(data.get("number"))
        season_data = {
            key: dict(value)
            for key, value in _dict(data.get("seasonData")).items()
            if isinstance(value, Mapping)
        }
        return cls(
            id=snapshot.id,
            team_id=snapshot.reference.parent.parent.id,
            name=_str(data.get("name")),
            number=int(number) if number is not None else None,
            position=_opt_str(data.get("position")),
            photo_url=_opt_str(data.get("photoUrl")),
            is_published=_bool(data.get("isPublished"), True),
            seasons=_str_list(data.get("seasons")),
            season_data=season_data,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "teamId": self.team_id,
            "name": self.name,
            "number": self.number,
            "position": self.position,
            "photoUrl": self.photo_url,
            "isPublished": self.is_published,
            "seasons": list(self.seasons),
        }


@dataclass
class Season:
    id: str
    label: str

    @classmethod
    def from_snapshot(cls, snapshot) -> "Season":
        from clubsite.services.season import to_slash_form

        data = snapshot.to_dict() or {}
        return cls(id=snapshot.id, label=_str(data.get("label")) or to_slash_form(snapshot.id))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label}


@dataclass
class RosterEntry:
    player_id: str
    season_id: str
    team_id: str | None = None

    @classmethod
    def from_snapshot(cls, snapshot) -> "RosterEntry":
        data = snapshot.to_dict() or {}
        return cls(
            player_id=snapshot.id,
            season_id=snapshot.reference.parent.parent.id,
            team_id=_opt_str(data.get("teamId")),
        )


@dataclass
class NewsArticle:
    id: str
    title: str = ""
    content: str = ""
    image_url: str | None = None
    category: str | None = None
    published_at: datetime | None = None
    featured_in_hero: bool = False
    like_count: int = 0

    @classmethod
    def from_snapshot(cls, snapshot) -> "NewsArticle":
        data = snapshot.to_dict() or {}
        likes = _number(data.get("likeCount"))
        return cls(
            id=snapshot.id,
            title=_str(data.get("title")),
            content=_str(data.get("content")),
            image_url=_opt_str(data.get("imageUrl")),
            category=_opt_str(data.get("category")),
            published_at=parse_timestamp(data.get("publishedAt")),
            featured_in_hero=_bool(data.get("featuredInHero"), False),
            like_count=max(0, int(likes)) if likes is not None else 0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "imageUrl": self.image_url,
            "category": self.category,
            "publishedAt": _iso(self.published_at),
            "featuredInHero": self.featured_in_hero,
            "likeCount": self.like_count,
        }


@dataclass
class Video:
    id: str
    title: str = ""
    youtube_video_id: str | None = None
    published_at: datetime | None = None

    @classmethod
    def from_snapshot(cls, snapshot) -> "Video":
        data = snapshot.to_dict() or {}
        return cls(
            id=snapshot.id,
            title=_str(data.get("title")),
            youtube_video_id=_opt_str(data.get("youtubeVideoId")),
            published_at=parse_timestamp(data.get("publishedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "youtubeVideoId": self.youtube_video_id,
            "publishedAt": _iso(self.published_at),
        }


@dataclass
class Competition:
    id: str
    name: str = "Unnamed Competition"
    season: str | None = None

    @classmethod
    def from_snapshot(cls, snapshot) -> "Competition":
        data = snapshot.to_dict() or {}
        return cls(
            id=snapshot.id,
            name=_opt_str(data.get("name")) or "Unnamed Competition",
            season=_opt_str(data.get("season")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "season": self.season}


@dataclass
class Partner:
    id: str
    name: str = ""
    category_id: str = ""
    logo_url: str = ""
    link_url: str = ""
    sort_order: float = 0
    is_published: bool = False

    @classmethod
    def from_snapshot(cls, snapshot) -> "Partner":
        data = snapshot.to_dict() or {}
        category_id = _str(data.get("categoryId")).strip()
        if not category_id:
            # older documents carry a fixed "top"/"official" category instead
            legacy = data.get("category")
            category_id = legacy if legacy in ("top", "official") else ""
        return cls(
            id=snapshot.id,
            name=_str(data.get("name")),
            category_id=category_id,
            logo_url=_str(data.get("logoUrl")),
            link_url=_str(data.get("linkUrl")),
            sort_order=_number(data.get("sortOrder")) or 0,
            is_published=_bool(data.get("isPublished"), False),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "logoUrl": self.logo_url,
            "linkUrl": self.link_url,
            "categoryId": self.category_id,
        }


PLAYER_STATS_CACHE_VERSION = 1


@dataclass
class PlayerStatsCache:
    cache_version: int
    cached_at_ms: int
    payload: dict[str, Any]

    @classmethod
    def from_snapshot(cls, snapshot) -> "PlayerStatsCache | None":
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        version = _number(data.get("cacheVersion"))
        cached_at = _number(data.get("cachedAtMs"))
        payload = data.get("payload")
        if version is None or cached_at is None or not isinstance(payload, Mapping):
            return None
        return cls(cache_version=int(version), cached_at_ms=int(cached_at), payload=dict(payload))

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        return self.cache_version == PLAYER_STATS_CACHE_VERSION and now_ms - self.cached_at_ms <= ttl_ms
