"""Read side of the public club pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Sequence, TypeVar

from flask import current_app

from clubsite.models import (
    ClubProfile,
    Competition,
    NewsArticle,
    Partner,
    Team,
    Video,
)
from clubsite.models.documents import DEFAULT_PARTNER_CATEGORIES, PartnerCategory
from clubsite.services.docstore import DESCENDING, DocumentStore, get_store
from clubsite.services.identity import ResolveMode, ResolvedClub, require_club

HERO_LIMIT_MIN = 1
HERO_LIMIT_MAX = 5
DEFAULT_HERO_LIMIT = 3
LATEST_NEWS_LIMIT = 5
VIDEO_LIMIT = 4
SUMMARY_NEWS_LIMIT = 3

T = TypeVar("T")


def clamp_hero_limit(value: Any, default: int = DEFAULT_HERO_LIMIT) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        value = default
    return max(HERO_LIMIT_MIN, min(HERO_LIMIT_MAX, int(value)))


def select_hero_news(articles: Sequence[NewsArticle], limit: int) -> list[NewsArticle]:
    """Featured articles first, recency order otherwise kept (stable sort)."""
    ordered = sorted(articles, key=lambda article: not article.featured_in_hero)
    return ordered[:limit]


def select_latest_news(articles: Sequence[NewsArticle], limit: int = LATEST_NEWS_LIMIT) -> list[NewsArticle]:
    ordered = sorted(
        articles,
        key=lambda article: article.published_at.timestamp() if article.published_at else float("-inf"),
        reverse=True,
    )
    return ordered[:limit]


@dataclass
class ClubPage:
    club: ResolvedClub
    display_name: str | None
    display_logo_url: str | None
    club_data: dict[str, Any]
    hero_limit: int
    hero_news: list[NewsArticle] = field(default_factory=list)
    news: list[NewsArticle] = field(default_factory=list)
    videos: list[Video] = field(default_factory=list)
    competitions: list[Competition] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        profile = self.club.profile.to_public_dict()
        profile["displayName"] = self.display_name
        profile["displayLogoUrl"] = self.display_logo_url
        return {
            "ownerUid": self.club.owner_uid,
            "profile": profile,
            "data": self.club_data,
            "heroNewsLimit": self.hero_limit,
            "heroNews": [article.to_dict() for article in self.hero_news],
            "news": [article.to_dict() for article in self.news],
            "videos": [video.to_dict() for video in self.videos],
            "competitions": [competition.to_dict() for competition in self.competitions],
        }


def _degrade(label: str, fetch: Callable[[], T], fallback: T) -> T:
    """Run one sub-fetch; a failure logs and yields ``fallback``."""
    try:
        return fetch()
    except Exception:
        current_app.logger.exception("Public club read failed: %s", label)
        return fallback


def _club_root(store: DocumentStore, owner_uid: str):
    return store.collection("clubs").document(owner_uid)


def fetch_recent_news(store: DocumentStore, owner_uid: str, limit: int) -> list[NewsArticle]:
    query = (
        _club_root(store, owner_uid)
        .collection("news")
        .order_by("publishedAt", DESCENDING)
        .limit(limit)
    )
    return [NewsArticle.from_snapshot(snap) for snap in query.stream()]


def _fetch_videos(store: DocumentStore, owner_uid: str) -> list[Video]:
    query = (
        _club_root(store, owner_uid)
        .collection("videos")
        .order_by("publishedAt", DESCENDING)
        .limit(VIDEO_LIMIT)
    )
    return [Video.from_snapshot(snap) for snap in query.stream()]


def _fetch_competitions(store: DocumentStore, owner_uid: str) -> list[Competition]:
    return [Competition.from_snapshot(snap) for snap in _club_root(store, owner_uid).collection("competitions").stream()]


def _fetch_club_data(store: DocumentStore, owner_uid: str) -> dict[str, Any]:
    snapshot = _club_root(store, owner_uid).get()
    return snapshot.to_dict() if snapshot.exists else {"headerImageUrl": None}


def _main_team(store: DocumentStore, profile: ClubProfile) -> Team | None:
    if not profile.main_team_id:
        return None
    snapshot = _club_root(store, profile.owner_uid).collection("teams").document(profile.main_team_id).get()
    return Team.from_snapshot(snapshot) if snapshot.exists else None


def display_identity(profile: ClubProfile, main_team: Team | None) -> tuple[str | None, str | None]:
    """Name and logo shown publicly; the main team's own values win when present."""
    name = profile.club_name
    logo = profile.logo_url
    if main_team is not None:
        name = main_team.name or name
        logo = main_team.logo_url or logo
    return name, logo


def build_club_page(
    identifier: str,
    summary: bool = False,
    store: DocumentStore | None = None,
) -> ClubPage:
    """Compose the public landing page data for ``identifier``.

    Raises NotFoundError when no club matches. Every other sub-read degrades
    to an empty value.
    """
    store = store or get_store()
    club = require_club(identifier, mode=ResolveMode.PUBLIC, store=store)
    owner_uid = club.owner_uid
    profile = club.profile

    club_data = _degrade("club data", lambda: _fetch_club_data(store, owner_uid), {"headerImageUrl": None})
    configured = profile.hero_news_limit
    if configured is None:
        configured = club_data.get("heroNewsLimit")
    hero_limit = clamp_hero_limit(configured, current_app.config.get("HERO_NEWS_LIMIT", DEFAULT_HERO_LIMIT))

    main_team = _degrade("main team", lambda: _main_team(store, profile), None)
    name, logo = display_identity(profile, main_team)

    if summary:
        recent = _degrade("news", lambda: fetch_recent_news(store, owner_uid, SUMMARY_NEWS_LIMIT), [])
        return ClubPage(
            club=club,
            display_name=name,
            display_logo_url=logo,
            club_data=club_data,
            hero_limit=hero_limit,
            hero_news=select_hero_news(recent, hero_limit),
            news=recent,
        )

    recent = _degrade("news", lambda: fetch_recent_news(store, owner_uid, hero_limit * 3), [])
    return ClubPage(
        club=club,
        display_name=name,
        display_logo_url=logo,
        club_data=club_data,
        hero_limit=hero_limit,
        hero_news=select_hero_news(recent, hero_limit),
        news=select_latest_news(recent),
        videos=_degrade("videos", lambda: _fetch_videos(store, owner_uid), []),
        competitions=_degrade("competitions", lambda: _fetch_competitions(store, owner_uid), []),
    )


def menu_settings(identifier: str, store: DocumentStore | None = None) -> dict[str, Any]:
    club = require_club(identifier, mode=ResolveMode.PUBLIC, store=store)
    return {"clubId": club.profile.club_id or identifier, **club.profile.display_settings.menu}


def partner_categories(profile: ClubProfile) -> list[PartnerCategory]:
    categories = list(profile.partner_categories) or list(DEFAULT_PARTNER_CATEGORIES)
    return sorted(categories, key=lambda category: category.sort_order)


def _published_partners(store: DocumentStore, owner_uid: str) -> list[Partner]:
    query = _club_root(store, owner_uid).collection("partners").where("isPublished", "==", True)
    return [Partner.from_snapshot(snap) for snap in query.stream()]


def partners_enabled(identifier: str, store: DocumentStore | None = None) -> bool:
    store = store or get_store()
    club = require_club(identifier, mode=ResolveMode.PUBLIC, store=store)
    query = _club_root(store, club.owner_uid).collection("partners").where("isPublished", "==", True).limit(1)
    return bool(query.get())


def partners_strip(identifier: str, store: DocumentStore | None = None) -> list[Partner]:
    """Published partners of the first two categories, by category then sort order."""
    store = store or get_store()
    club = require_club(identifier, mode=ResolveMode.PUBLIC, store=store)
    categories = partner_categories(club.profile)
    strip_ids = [category.id for category in categories[:2]]
    order = {category.id: category.sort_order for category in categories}
    partners = [
        partner
        for partner in _published_partners(store, club.owner_uid)
        if partner.category_id in strip_ids
    ]
    partners.sort(key=lambda partner: (order.get(partner.category_id, 9999), partner.sort_order))
    return partners


def list_directory_clubs(store: DocumentStore | None = None) -> list[ClubProfile]:
    store = store or get_store()
    query = store.collection("club_profiles").where("directoryListed", "==", True)
    profiles = [ClubProfile.from_snapshot(snap) for snap in query.stream()]
    return sorted(
        (profile for profile in profiles if profile.club_id),
        key=lambda profile: (profile.club_name or profile.club_id or "").lower(),
    )


__all__ = [
    "ClubPage",
    "build_club_page",
    "clamp_hero_limit",
    "display_identity",
    "fetch_recent_news",
    "list_directory_clubs",
    "menu_settings",
    "partner_categories",
    "partners_enabled",
    "partners_strip",
    "select_hero_news",
    "select_latest_news",
]
