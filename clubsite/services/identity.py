"""Club identity resolution.

Every club's data lives under ``clubs/{ownerUid}``. Callers arrive with either
a public slug (``clubId``) or an authenticated account UID, and this module
maps that identifier to the owning profile by trying named strategies in a
fixed order. The first strategy that matches wins; later ones are never
consulted. Resolution is repeated per request, nothing is cached.

    1. document_id   ``club_profiles/{identifier}`` exists
    2. club_id       ``clubId == identifier``
    3. owner_uid     ``ownerUid == identifier``        (account flows)
    4. admin         ``identifier in admins``          (delegated admin flows)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from clubsite.errors import NotFoundError
from clubsite.models import ClubProfile
from clubsite.services.docstore import DocumentSnapshot, DocumentStore, get_store

CLUB_PROFILES = "club_profiles"


class ResolveMode(Enum):
    PUBLIC = "public"
    ACCOUNT = "account"
    DELEGATED = "delegated"


@dataclass(frozen=True)
class ResolvedClub:
    owner_uid: str
    profile: ClubProfile
    strategy: str

    @property
    def profile_doc_id(self) -> str:
        return self.profile.doc_id


Strategy = Callable[[DocumentStore, str], Optional[DocumentSnapshot]]


def _by_document_id(store: DocumentStore, identifier: str) -> DocumentSnapshot | None:
    snapshot = store.collection(CLUB_PROFILES).document(identifier).get()
    return snapshot if snapshot.exists else None


def _first(query) -> DocumentSnapshot | None:
    matches = query.limit(1).get()
    return matches[0] if matches else None


def _by_club_id(store: DocumentStore, identifier: str) -> DocumentSnapshot | None:
    return _first(store.collection(CLUB_PROFILES).where("clubId", "==", identifier))


def _by_owner_uid(store: DocumentStore, identifier: str) -> DocumentSnapshot | None:
    return _first(store.collection(CLUB_PROFILES).where("ownerUid", "==", identifier))


def _by_admin_membership(store: DocumentStore, identifier: str) -> DocumentSnapshot | None:
    return _first(store.collection(CLUB_PROFILES).where("admins", "array-contains", identifier))


STRATEGIES: dict[ResolveMode, tuple[tuple[str, Strategy], ...]] = {
    ResolveMode.PUBLIC: (
        ("document_id", _by_document_id),
        ("club_id", _by_club_id),
    ),
    ResolveMode.ACCOUNT: (
        ("document_id", _by_document_id),
        ("club_id", _by_club_id),
        ("owner_uid", _by_owner_uid),
    ),
    ResolveMode.DELEGATED: (
        ("document_id", _by_document_id),
        ("club_id", _by_club_id),
        ("owner_uid", _by_owner_uid),
        ("admin", _by_admin_membership),
    ),
}


def resolve_club(
    identifier: str,
    mode: ResolveMode = ResolveMode.PUBLIC,
    store: DocumentStore | None = None,
) -> ResolvedClub | None:
    """Return the club owning ``identifier`` or None when no strategy matches."""
    identifier = identifier.strip() if isinstance(identifier, str) else ""
    if not identifier or "/" in identifier:
        return None
    store = store or get_store()
    for name, strategy in STRATEGIES[mode]:
        snapshot = strategy(store, identifier)
        if snapshot is None:
            continue
        profile = ClubProfile.from_snapshot(snapshot)
        return ResolvedClub(owner_uid=profile.owner_uid, profile=profile, strategy=name)
    return None


def resolve_owner_uid(
    identifier: str,
    mode: ResolveMode = ResolveMode.PUBLIC,
    store: DocumentStore | None = None,
) -> str | None:
    resolved = resolve_club(identifier, mode=mode, store=store)
    return resolved.owner_uid if resolved else None


def require_club(
    identifier: str,
    mode: ResolveMode = ResolveMode.PUBLIC,
    store: DocumentStore | None = None,
) -> ResolvedClub:
    resolved = resolve_club(identifier, mode=mode, store=store)
    if resolved is None:
        raise NotFoundError("Club not found")
    return resolved


__all__ = [
    "CLUB_PROFILES",
    "ResolveMode",
    "ResolvedClub",
    "STRATEGIES",
    "resolve_club",
    "resolve_owner_uid",
    "require_club",
]
