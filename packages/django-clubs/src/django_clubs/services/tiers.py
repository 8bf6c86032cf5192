"""Tier registry services.

Provides:
- list_club_tiers: Visible tiers for one or more clubs, cheapest first
- replace_club_tiers: Delete, create and update a club's tiers atomically
- upsert_club_tiers: Split tier payloads by presence of 'id' and replace
- lock_club: Row-lock a club for the current transaction
"""

import logging

from ..conf import get_image_backend, get_setting
from ..exceptions import BadRequestError, NotFoundError
from ..models import Accessor, Club, ClubAdminPermission, ClubTier
from ..permissions import Principal, require_club_capability, user_contributing_clubs
from ..transactions import atomic_with_timeouts
from .entitlements import remove_accessors

logger = logging.getLogger(__name__)

TIER_FIELDS = (
    'name',
    'description',
    'unit_amount',
    'currency',
    'member_limit',
    'unlisted',
    'joinable',
)


def lock_club(club_id) -> Club:
    """Lock a club row for the rest of the current transaction.

    Tier edits and grant reconciliation for the same club serialize on
    this lock. Must be called inside a transaction.

    Raises:
        NotFoundError: If the club does not exist
    """
    try:
        return Club.objects.select_for_update().get(pk=club_id)
    except Club.DoesNotExist:
        raise NotFoundError('Club', club_id)


def list_club_tiers(
    principal: Principal | None = None,
    club_id=None,
    club_ids=None,
    listed_only: bool | None = None,
    joinable_only: bool | None = None,
    tier_id=None,
) -> list[ClubTier]:
    """
    List tiers for one or more clubs ordered by ascending price.

    Callers who do not contribute to every queried club (and are not
    moderators) only ever see listed, joinable tiers, whatever filter
    they asked for.

    Args:
        principal: The caller (None for anonymous)
        club_id: A single club to query
        club_ids: Several clubs to query
        listed_only: True = listed tiers only, False = unlisted only
        joinable_only: True = joinable only, False = closed only
        tier_id: Restrict to one tier

    Returns:
        list[ClubTier] annotated with member_count
    """
    queried = set()
    if club_id is not None:
        queried.add(int(club_id))
    if club_ids:
        queried.update(int(c) for c in club_ids)
    if not queried:
        return []

    principal = principal or Principal(user_id=None)
    if principal.is_moderator:
        can_view_all = True
    else:
        contributing = {c.id for c in user_contributing_clubs(principal.user_id, queried)}
        can_view_all = queried <= contributing

    if not can_view_all:
        listed_only = True
        joinable_only = True

    tiers = ClubTier.objects.filter(club_id__in=queried).with_member_count()
    if listed_only is not None:
        tiers = tiers.filter(unlisted=not listed_only)
    if joinable_only is not None:
        tiers = tiers.filter(joinable=joinable_only)
    if tier_id:
        tiers = tiers.filter(pk=tier_id)

    return list(tiers.order_by('unit_amount', 'id'))


def _create_cover_images(payloads: list[dict], user_id) -> dict:
    """Store new cover images and return {url: image_id}."""
    new_images = [
        p['cover_image'] for p in payloads
        if p.get('cover_image') and not p['cover_image'].get('id')
    ]
    if not new_images:
        return {}
    created = get_image_backend().create_images(new_images, user_id)
    return {image['url']: image['id'] for image in created}


def _cover_image_id(image, created: dict):
    if image is None:
        return None
    if image.get('id'):
        return image['id']
    return created.get(image.get('url'))


def replace_club_tiers(
    club_id,
    principal: Principal,
    to_create: list[dict] | None = None,
    to_update: list[dict] | None = None,
    delete_ids=None,
) -> list[ClubTier]:
    """
    Replace a club's tiers in one transaction.

    Order: lock club row, check capability, validate every tier id, delete,
    create, update. All checks run before the first write; a rejected
    request changes nothing.

    Args:
        club_id: The club whose tiers change
        principal: The caller (needs ManageTiers, owner or moderator)
        to_create: Tier payloads without ids; duplicate names are skipped
        to_update: Tier payloads with ids belonging to this club
        delete_ids: Tier ids to delete; tiers with members are refused

    Returns:
        The club's tiers after the change, cheapest first

    Raises:
        AuthorizationError: If the principal cannot manage tiers
        BadRequestError: If a tier to delete still has members, or a tier is
            both updated and deleted
        NotFoundError: If the club or a referenced tier does not exist
    """
    to_create = list(to_create or [])
    to_update = list(to_update or [])
    delete_ids = sorted({int(i) for i in (delete_ids or [])})

    with atomic_with_timeouts():
        club = lock_club(club_id)
        require_club_capability(
            principal,
            club,
            ClubAdminPermission.MANAGE_TIERS,
            message="Only club owners can edit club tiers",
        )

        referenced_ids = set(delete_ids) | {int(p['id']) for p in to_update}
        existing = {t.id: t for t in ClubTier.objects.filter(club=club, id__in=referenced_ids)}
        missing = sorted(referenced_ids - set(existing))
        if missing:
            raise NotFoundError('ClubTier', missing[0])

        updated_and_deleted = sorted(set(delete_ids) & {int(p['id']) for p in to_update})
        if updated_and_deleted:
            raise BadRequestError(
                f"Tier {updated_and_deleted[0]} cannot be updated and deleted in the same request"
            )

        if delete_ids:
            tier_with_members = (
                ClubTier.objects.filter(id__in=delete_ids, memberships__isnull=False)
                .values_list('name', flat=True)
                .first()
            )
            if tier_with_members is not None:
                raise BadRequestError(
                    "Cannot delete tier with members. "
                    "Please move the members out of this tier before deleting it."
                )

        created_images = _create_cover_images(to_create + to_update, principal.user_id)

        if delete_ids:
            remove_accessors([Accessor.tier(i) for i in delete_ids])
            ClubTier.objects.filter(club=club, id__in=delete_ids).delete()

        if to_create:
            default_currency = get_setting('DEFAULT_CURRENCY')
            ClubTier.objects.bulk_create(
                [
                    ClubTier(
                        club=club,
                        cover_image_id=_cover_image_id(p.get('cover_image'), created_images),
                        **{
                            'currency': default_currency,
                            **{k: p[k] for k in TIER_FIELDS if k in p},
                        },
                    )
                    for p in to_create
                ],
                ignore_conflicts=True,
            )

        for payload in to_update:
            tier = existing[int(payload['id'])]
            for key in TIER_FIELDS:
                if key in payload:
                    setattr(tier, key, payload[key])
            if 'cover_image' in payload:
                tier.cover_image_id = _cover_image_id(payload['cover_image'], created_images)
            tier.save()

    logger.info(
        f"Club {club.pk} tiers replaced: {len(to_create)} created, "
        f"{len(to_update)} updated, {len(delete_ids)} deleted"
    )
    return list(
        ClubTier.objects.filter(club=club).with_member_count().order_by('unit_amount', 'id')
    )


def upsert_club_tiers(
    club_id,
    principal: Principal,
    tiers: list[dict] | None = None,
    delete_tier_ids=None,
) -> list[ClubTier]:
    """Create tiers without an 'id', update tiers with one, delete the rest listed."""
    tiers = tiers or []
    return replace_club_tiers(
        club_id,
        principal,
        to_create=[t for t in tiers if not t.get('id')],
        to_update=[t for t in tiers if t.get('id')],
        delete_ids=delete_tier_ids,
    )

