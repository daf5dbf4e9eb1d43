"""Club profile management service."""

from __future__ import annotations

import re
from typing import Any, Mapping

from flask import current_app

from clubsite.errors import ConflictError, PermissionDenied, ValidationError
from clubsite.models import ClubProfile, Plan
from clubsite.models.documents import MENU_FLAGS, PAGE_KEYS
from clubsite.services.docstore import SERVER_TIMESTAMP, AlreadyExists, DocumentStore, get_store
from clubsite.services.identity import CLUB_PROFILES, ResolvedClub

CLUB_ID_PATTERN = re.compile(r'^[a-z0-9-]+$')

RESERVED_CLUB_IDS = {
    'admin', 'api', 'auth', 'static', 'assets', 'clubs',
    'login', 'logout', 'register', 'signup', 'www',
    'privacy', 'terms', 'tokusho', 'cancel-policy',
    # names taken by /api/club/... routes
    'update', 'transfers-public', 'delete-season', 'cleanup-roster',
    'invalidate-player-stats-cache', 'backfill-public-match-index',
}

# Profile fields accepted from the settings form, with the type each must carry
_STRING_FIELDS = (
    'homeBgColor', 'foundedYear', 'hometown', 'stadiumName',
    'stadiumCapacity', 'stadiumPhotoUrl',
)
_NON_EMPTY_STRING_FIELDS = ('clubName', 'layoutType')
_BOOL_FIELDS = ('realTeamUsage', 'gameTeamUsage', 'transfersPublic', 'directoryListed')
_LIST_FIELDS = ('sponsors', 'legalPages', 'clubTitles')


def validate_club_id(club_id: str) -> tuple[bool, str | None]:
    """
    Validate a public club slug.

    Returns:
        (is_valid, error_message)
    """
    if not club_id:
        return False, "clubId is required"

    if len(club_id) < 3:
        return False, "clubId must be at least 3 characters long"

    if len(club_id) > 63:
        return False, "clubId must be 63 characters or less"

    if not CLUB_ID_PATTERN.match(club_id):
        return False, "clubId can only contain lowercase letters, numbers, and hyphens"

    if club_id in RESERVED_CLUB_IDS:
        return False, f"'{club_id}' is reserved and cannot be used"

    return True, None


def register_club(
    owner_uid: str,
    club_id: str,
    club_name: str | None = None,
    store: DocumentStore | None = None,
) -> ClubProfile:
    """
    Register a new club owned by ``owner_uid``.

    The profile document is keyed by the owner UID. When a club name is
    given, a first team carrying that name is created and becomes the
    club's main team.

    Raises:
        ValidationError: malformed clubId
        ConflictError: the clubId is taken or the owner already has a club
    """
    store = store or get_store()
    club_id = (club_id or '').strip()
    is_valid, error = validate_club_id(club_id)
    if not is_valid:
        raise ValidationError(error, field='clubId')

    profiles = store.collection(CLUB_PROFILES)
    if profiles.where('clubId', '==', club_id).limit(1).get():
        raise ConflictError("This clubId is already in use")
    if profiles.document(club_id).get().exists:
        raise ConflictError("This clubId is already in use")
    if profiles.document(owner_uid).get().exists or profiles.where('ownerUid', '==', owner_uid).limit(1).get():
        raise ConflictError("Your account has already registered a club")

    payload: dict[str, Any] = {
        'clubId': club_id,
        'ownerUid': owner_uid,
        'plan': Plan.FREE.value,
        'admins': [],
        'createdAt': SERVER_TIMESTAMP,
    }
    club_name = (club_name or '').strip() or None

    profile_ref = profiles.document(owner_uid)
    club_ref = store.collection('clubs').document(owner_uid)
    batch = store.batch()
    if club_name:
        team_ref = club_ref.collection('teams').document()
        batch.set(team_ref, {'name': club_name, 'createdAt': SERVER_TIMESTAMP})
        payload['clubName'] = club_name
        payload['mainTeamId'] = team_ref.id
    batch.create(profile_ref, payload)
    batch.set(club_ref, {'ownerUid': owner_uid, 'createdAt': SERVER_TIMESTAMP}, merge=True)
    try:
        batch.commit()
    except AlreadyExists:
        raise ConflictError("Your account has already registered a club")

    current_app.logger.info(f"Registered club {club_id} for owner {owner_uid}")
    return ClubProfile.from_snapshot(profile_ref.get())


def _display_settings_patch(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, Mapping):
        return {}
    patch: dict[str, Any] = {}
    for key in MENU_FLAGS:
        if isinstance(raw.get(key), bool):
            patch[key] = raw[key]
    for page in PAGE_KEYS:
        if isinstance(raw.get(f'{page}V2'), bool):
            patch[f'{page}V2'] = raw[f'{page}V2']
        if isinstance(raw.get(f'{page}Variant'), str):
            patch[f'{page}Variant'] = raw[f'{page}Variant']
    if isinstance(raw.get('playerProfileLatest'), bool):
        patch['playerProfileLatest'] = raw['playerProfileLatest']
    return patch


def build_profile_patch(body: Mapping[str, Any]) -> dict[str, Any]:
    """Keep only well-typed, known profile fields from a settings payload."""
    patch: dict[str, Any] = {}

    if 'logoUrl' in body:
        logo = body.get('logoUrl')
        patch['logoUrl'] = logo if isinstance(logo, str) and logo else None

    for key in _NON_EMPTY_STRING_FIELDS:
        value = body.get(key)
        if isinstance(value, str) and value:
            patch[key] = value

    for key in _STRING_FIELDS:
        if isinstance(body.get(key), str):
            patch[key] = body[key]

    for key in _BOOL_FIELDS:
        if isinstance(body.get(key), bool):
            patch[key] = body[key]

    for key in _LIST_FIELDS:
        if isinstance(body.get(key), list):
            patch[key] = body[key]

    if isinstance(body.get('snsLinks'), Mapping):
        patch['snsLinks'] = dict(body['snsLinks'])

    main_team_id = body.get('mainTeamId')
    if isinstance(main_team_id, str) and main_team_id:
        patch['mainTeamId'] = main_team_id

    hero_limit = body.get('heroNewsLimit')
    if isinstance(hero_limit, int) and not isinstance(hero_limit, bool):
        if not 1 <= hero_limit <= 5:
            raise ValidationError("heroNewsLimit must be between 1 and 5", field='heroNewsLimit')
        patch['heroNewsLimit'] = hero_limit

    categories = body.get('partnersCategories')
    if isinstance(categories, list):
        patch['partnersCategories'] = [
            {'id': c['id'], 'name': c['name'], 'sortOrder': c.get('sortOrder', 0)}
            for c in categories
            if isinstance(c, Mapping) and isinstance(c.get('id'), str) and isinstance(c.get('name'), str)
        ]

    display = _display_settings_patch(body.get('displaySettings'))
    if display:
        patch['displaySettings'] = display

    return patch


def update_club(
    club: ResolvedClub,
    caller_uid: str,
    body: Mapping[str, Any],
    store: DocumentStore | None = None,
) -> dict[str, Any]:
    """
    Apply a settings payload to the club profile.

    ``clubId`` is immutable once set. Only the owner may change ``admins``.

    Returns:
        The patch that was written.
    """
    store = store or get_store()
    profile = club.profile
    if not profile.can_manage(caller_uid):
        raise PermissionDenied()

    patch = build_profile_patch(body)

    requested_club_id = body.get('clubId')
    if isinstance(requested_club_id, str) and requested_club_id.strip() and not profile.club_id:
        club_id = requested_club_id.strip()
        is_valid, error = validate_club_id(club_id)
        if not is_valid:
            raise ValidationError(error, field='clubId')
        taken = store.collection(CLUB_PROFILES).where('clubId', '==', club_id).limit(1).get()
        if taken and taken[0].id != profile.doc_id:
            raise ConflictError("This clubId is already in use")
        patch['clubId'] = club_id

    if 'admins' in body:
        if caller_uid != profile.owner_uid:
            raise PermissionDenied("Only the club owner can change administrators")
        admins = body.get('admins')
        if not isinstance(admins, list) or not all(isinstance(uid, str) and uid for uid in admins):
            raise ValidationError("admins must be a list of account ids", field='admins')
        patch['admins'] = sorted(set(admins) - {profile.owner_uid})

    if 'mainTeamId' in patch:
        team = store.collection('clubs').document(club.owner_uid).collection('teams').document(patch['mainTeamId']).get()
        if not team.exists:
            raise ValidationError("mainTeamId does not name a team of this club", field='mainTeamId')

    if not patch:
        return {}

    store.collection(CLUB_PROFILES).document(profile.doc_id).set(
        {**patch, 'updatedAt': SERVER_TIMESTAMP}, merge=True
    )
    current_app.logger.info(
        f"Updated club profile {profile.doc_id} by {caller_uid}: {sorted(patch)}"
    )
    return patch


def set_transfers_public(club: ResolvedClub, caller_uid: str, value: Any, store: DocumentStore | None = None) -> bool:
    if not isinstance(value, bool):
        raise ValidationError("transfersPublic must be a boolean", field='transfersPublic')
    update_club(club, caller_uid, {'transfersPublic': value}, store=store)
    return value


__all__ = [
    'CLUB_ID_PATTERN',
    'validate_club_id',
    'register_club',
    'build_profile_patch',
    'update_club',
    'set_transfers_public',
]
