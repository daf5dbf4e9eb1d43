from .models import Document, JSONType
from .documents import (
    ClubProfile,
    Competition,
    DisplaySettings,
    NewsArticle,
    Partner,
    PartnerCategory,
    Plan,
    Player,
    PlayerStatsCache,
    RosterEntry,
    Season,
    Team,
    Video,
    plan_limit,
)

__all__ = [
    "Document",
    "JSONType",
    "ClubProfile",
    "Competition",
    "DisplaySettings",
    "NewsArticle",
    "Partner",
    "PartnerCategory",
    "Plan",
    "Player",
    "PlayerStatsCache",
    "RosterEntry",
    "Season",
    "Team",
    "Video",
    "plan_limit",
]
