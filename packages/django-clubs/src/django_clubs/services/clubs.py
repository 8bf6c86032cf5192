"""Club lifecycle services.

Provides:
- get_club: Fetch one club
- create_club: Create a club with its images and initial tiers
- update_club: Edit club fields (ManageClub)
- upsert_club: Create or update depending on club_id
- delete_club: Refund the club balance to the owner and delete the club
- list_clubs: Browse clubs with engagement/nsfw filters and id cursor
"""

import logging

from django.db.models import Q

from ..conf import get_image_backend, get_ledger_backend
from ..exceptions import AuthorizationError, BadRequestError
from ..models import Accessor, Club, ClubAdminPermission
from ..permissions import Principal, get_club_or_404, require_club_capability
from ..transactions import atomic_with_timeouts
from .entitlements import remove_accessors
from .tiers import lock_club, replace_club_tiers

logger = logging.getLogger(__name__)

CLUB_FIELDS = ('name', 'description', 'nsfw', 'billing', 'unlisted')

# Payload key -> Club id field
IMAGE_FIELDS = {
    'avatar': 'avatar_id',
    'cover_image': 'cover_image_id',
    'header_image': 'header_image_id',
}

ENGAGED = 'engaged'


def get_club(club_id) -> Club:
    """Fetch a club by id.

    Raises:
        NotFoundError: If the club does not exist
    """
    return get_club_or_404(club_id)


def _resolve_images(images: dict, user_id) -> dict:
    """
    Map image payloads to Club id fields.

    A payload with an ``id`` is used as is, one with only a ``url`` is stored
    through the image backend, and None clears the field. Keys that are
    absent leave the field untouched.
    """
    new_images = [image for image in images.values() if image and not image.get('id')]
    created = {}
    if new_images:
        created = {
            image['url']: image['id']
            for image in get_image_backend().create_images(new_images, user_id)
        }

    fields = {}
    for key, image in images.items():
        if image is None:
            fields[IMAGE_FIELDS[key]] = None
        else:
            fields[IMAGE_FIELDS[key]] = image.get('id') or created.get(image.get('url'))
    return fields


def _split_payload(data: dict) -> tuple[dict, dict]:
    unknown = set(data) - set(CLUB_FIELDS) - set(IMAGE_FIELDS)
    if unknown:
        raise BadRequestError(f"Unknown club fields: {', '.join(sorted(unknown))}")
    fields = {k: v for k, v in data.items() if k in CLUB_FIELDS}
    images = {k: v for k, v in data.items() if k in IMAGE_FIELDS}
    return fields, images


def create_club(principal: Principal, tiers: list[dict] | None = None, **data) -> Club:
    """
    Create a club owned by the principal.

    Images and initial tiers are stored in the same transaction as the club.

    Args:
        principal: The creating user
        tiers: Initial tier payloads
        **data: Club fields (name, description, nsfw, billing, unlisted)
            and image payloads (avatar, cover_image, header_image)

    Raises:
        AuthorizationError: If the principal is anonymous
        BadRequestError: If a field is unknown or the name is missing
    """
    if principal.user_id is None:
        raise AuthorizationError("You must be logged in to create a club")
    fields, images = _split_payload(data)
    if not fields.get('name'):
        raise BadRequestError("Club name is required")

    with atomic_with_timeouts():
        club = Club.objects.create(
            user_id=principal.user_id,
            **fields,
            **_resolve_images(images, principal.user_id),
        )
        if tiers:
            replace_club_tiers(club.pk, principal, to_create=tiers)

    logger.info(f"Club {club.pk} created by user {principal.user_id} with {len(tiers or [])} tiers")
    return club


def update_club(principal: Principal, club_id, **data) -> Club:
    """
    Update a club's fields and images.

    Raises:
        AuthorizationError: If the principal lacks ManageClub
        BadRequestError: If a field is unknown
        NotFoundError: If the club does not exist
    """
    fields, images = _split_payload(data)

    with atomic_with_timeouts():
        club = lock_club(club_id)
        require_club_capability(
            principal,
            club,
            ClubAdminPermission.MANAGE_CLUB,
            message="You do not have permission to edit this club",
        )
        fields.update(_resolve_images(images, principal.user_id))
        for key, value in fields.items():
            setattr(club, key, value)
        club.save()

    logger.info(f"Club {club.pk} updated by user {principal.user_id}: {sorted(fields)}")
    return club


def upsert_club(principal: Principal, club_id=None, **data) -> Club:
    """Update the club when ``club_id`` is given, otherwise create it."""
    if club_id:
        data.pop('tiers', None)
        return update_club(principal, club_id, **data)
    return create_club(principal, **data)


def delete_club(principal: Principal, club_id) -> Club:
    """
    Delete a club.

    A positive club balance is moved to the owner in one ledger transaction
    first. Grants held by the club or any of its tiers are removed and the
    affected resources have their availability recomputed.

    Returns:
        The deleted Club instance (pk preserved in ``deleted_id``)

    Raises:
        AuthorizationError: If the principal is neither owner nor moderator
        NotFoundError: If the club does not exist
    """
    with atomic_with_timeouts():
        club = lock_club(club_id)
        if club.user_id != principal.user_id and not principal.is_moderator:
            logger.warning(f"User {principal.user_id} denied deleting club {club.pk}")
            raise AuthorizationError("Only club owners can delete clubs")

        tier_ids = list(club.tiers.values_list('id', flat=True))
        affected = remove_accessors(
            [Accessor.club(club.pk)] + [Accessor.tier(t) for t in tier_ids]
        )

        ledger = get_ledger_backend()
        balance = ledger.get_balance(club.pk, 'Club') or 0
        if balance > 0:
            ledger.create_transaction(
                from_account_id=club.pk,
                from_account_type='Club',
                to_account_id=club.user_id,
                to_account_type='User',
                amount=balance,
                transaction_type='Tip',
                description=f"Balance of deleted club {club.name}",
            )
            logger.info(f"Refunded {balance} from club {club.pk} to user {club.user_id}")

        club.deleted_id = club.pk
        club.delete()

    logger.info(
        f"Club {club.deleted_id} deleted by user {principal.user_id}; "
        f"{len(affected)} resources lost club access"
    )
    return club


def list_clubs(
    principal: Principal | None = None,
    engagement: str | None = None,
    nsfw: bool | None = None,
    club_ids=None,
    cursor=None,
    limit: int = 50,
) -> dict:
    """
    Browse clubs, newest first.

    Anonymous callers see listed clubs only. Signed-in callers see their own
    clubs plus listed ones, or with ``engagement='engaged'`` only clubs they
    own or hold a membership in.

    Args:
        cursor: Club id to start from (inclusive)

    Returns:
        dict with ``items`` and ``next_cursor`` (None on the last page)
    """
    if limit < 1:
        raise BadRequestError("limit must be positive")

    user_id = principal.user_id if principal else None
    clubs = Club.objects.all()

    if club_ids is not None:
        clubs = clubs.filter(id__in=list(club_ids))

    if user_id is None:
        clubs = clubs.listed()
    elif engagement == ENGAGED:
        clubs = clubs.filter(Q(user_id=user_id) | Q(memberships__user_id=user_id))
    elif engagement:
        raise BadRequestError(f"Unknown engagement filter: {engagement}")
    else:
        clubs = clubs.filter(Q(user_id=user_id) | Q(unlisted=False))

    if nsfw is not None:
        clubs = clubs.filter(nsfw=nsfw)
    if cursor is not None:
        clubs = clubs.filter(id__lte=cursor)

    items = list(clubs.distinct().order_by('-id')[:limit + 1])
    next_cursor = None
    if len(items) > limit:
        next_cursor = items.pop().pk
    return {'items': items, 'next_cursor': next_cursor}
