"""Club resource entitlement engine.

Decides which clubs and tiers gate a resource and keeps EntityAccess and
the resource's availability flag consistent.

Provides:
- grant_club_access: Replace a resource's club/tier grants for a set of clubs
- update_club_access: Replace one club's grants on a resource
- revoke_club_access: Remove one club's grants from a resource
- remove_accessors: Drop every grant held by deleted clubs or tiers
- sync_availability: Recompute Public/Private from the grant table
- get_entitlement_state: PUBLIC/GATED state and the accessor kinds present

A resource is PUBLIC when it has no grant of any accessor type and GATED
otherwise; Club, ClubTier and User grants may coexist. Availability is
recomputed from the grant table after every change and never assumed
from club grants alone.

Each club owns the accessor id-space made of its own id and all of its
tier ids. Writers only ever reconcile inside the id-space of the clubs
they name, so grants from unrelated clubs on the same resource survive.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from ..exceptions import AuthorizationError, BadRequestError, NotFoundError
from ..models import (
    Accessor,
    AccessorType,
    Availability,
    Club,
    ClubAdminPermission,
    ClubTier,
    EntityAccess,
)
from ..permissions import (
    Principal,
    resolve_club_permissions,
    resolve_entity_ownership,
    user_contributing_clubs,
)
from ..registry import Resource, ResourceRegistry, set_availability
from ..transactions import atomic_with_timeouts

logger = logging.getLogger(__name__)


class EntitlementState(str, Enum):
    """Gate state of a resource, derived purely from its grants."""

    PUBLIC = 'PUBLIC'
    GATED = 'GATED'


@dataclass(frozen=True)
class ClubAccess:
    """One entry of a grant request.

    No tier ids means club-level access (all current and future tiers);
    otherwise access is limited to exactly the listed tiers.
    """

    club_id: int
    club_tier_ids: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, 'club_id', int(self.club_id))
        object.__setattr__(
            self,
            'club_tier_ids',
            tuple(sorted({int(t) for t in (self.club_tier_ids or ())})),
        )

    @property
    def is_general(self) -> bool:
        return not self.club_tier_ids

    def accessors(self) -> set[Accessor]:
        if self.is_general:
            return {Accessor.club(self.club_id)}
        return {Accessor.tier(t) for t in self.club_tier_ids}


@dataclass(frozen=True)
class ResourceEntitlement:
    """Snapshot of a resource's entitlement after an operation."""

    resource: Resource
    state: EntitlementState
    availability: str | None
    accessor_kinds: frozenset = field(default_factory=frozenset)
    added: frozenset = field(default_factory=frozenset)
    removed: frozenset = field(default_factory=frozenset)

    @property
    def is_public(self) -> bool:
        return self.state == EntitlementState.PUBLIC


def _as_club_access(entry) -> ClubAccess:
    if isinstance(entry, ClubAccess):
        return entry
    if isinstance(entry, dict):
        return ClubAccess(entry['club_id'], tuple(entry.get('club_tier_ids') or ()))
    return ClubAccess(entry)


def _lock_clubs(club_ids) -> set[int]:
    """Row-lock the given clubs in id order and return the ids that exist."""
    return set(
        Club.objects.select_for_update()
        .filter(id__in=sorted(club_ids))
        .order_by('id')
        .values_list('id', flat=True)
    )


def _club_scope(club_ids) -> set[Accessor]:
    """The accessor id-space of the given clubs: club ids plus all their tier ids."""
    club_ids = set(club_ids)
    if not club_ids:
        return set()
    tier_ids = ClubTier.objects.filter(club_id__in=club_ids).values_list('id', flat=True)
    return {Accessor.club(c) for c in club_ids} | {Accessor.tier(t) for t in tier_ids}


def _gating_club_ids(resource: Resource) -> set[int]:
    """Clubs that currently gate a resource at club or tier level."""
    grants = list(
        EntityAccess.objects.for_resource(resource)
        .club_scoped()
        .values_list('accessor_type', 'accessor_id')
    )
    club_ids = {i for kind, i in grants if kind == AccessorType.CLUB}
    tier_ids = {i for kind, i in grants if kind == AccessorType.CLUB_TIER}
    if tier_ids:
        club_ids |= set(
            ClubTier.objects.filter(id__in=tier_ids).values_list('club_id', flat=True)
        )
    return club_ids


def _reconcile(resource: Resource, scope: set, desired: set, added_by_id) -> tuple[set, set]:
    """
    Make the resource's grants inside ``scope`` equal ``desired``.

    Computes the remove-set and add-set against the current rows and applies
    both. Grants outside ``scope`` are never read or written. Must run inside
    a transaction.

    Returns:
        (added, removed) accessor sets
    """
    if not desired <= scope:
        raise BadRequestError("Requested access is outside the clubs being updated")

    existing = set()
    if scope:
        existing = {
            Accessor(kind, accessor_id)
            for kind, accessor_id in EntityAccess.objects.for_resource(resource)
            .for_accessors(scope)
            .values_list('accessor_type', 'accessor_id')
        }

    to_remove = existing - desired
    to_add = desired - existing

    if to_remove:
        EntityAccess.objects.for_resource(resource).for_accessors(to_remove).delete()

    if to_add:
        EntityAccess.objects.bulk_create(
            [
                EntityAccess(
                    access_to_id=resource.entity_id,
                    access_to_type=resource.entity_type,
                    accessor_id=accessor.id,
                    accessor_type=accessor.kind,
                    added_by_id=added_by_id,
                )
                for accessor in sorted(to_add, key=lambda a: (a.kind, a.id))
            ],
            ignore_conflicts=True,
        )

    return to_add, to_remove


def sync_availability(resource: Resource) -> str:
    """
    Recompute a resource's availability from the grant table.

    Public iff no grant of any accessor type exists. Any remaining grant,
    including direct user grants, keeps the resource Private.
    """
    has_access = EntityAccess.objects.for_resource(resource).exists()
    availability = Availability.PRIVATE if has_access else Availability.PUBLIC
    set_availability(resource.entity_type, [resource.entity_id], availability)
    return availability


def get_entitlement_state(
    resource: Resource,
    added=frozenset(),
    removed=frozenset(),
) -> ResourceEntitlement:
    """Describe a resource's current gate state and availability flag."""
    resource_type = ResourceRegistry.require(resource.entity_type)
    kinds = frozenset(
        EntityAccess.objects.for_resource(resource)
        .values_list('accessor_type', flat=True)
        .distinct()
    )
    return ResourceEntitlement(
        resource=resource,
        state=EntitlementState.GATED if kinds else EntitlementState.PUBLIC,
        availability=resource_type.get_availability(resource.entity_id),
        accessor_kinds=kinds,
        added=frozenset(added),
        removed=frozenset(removed),
    )


def _require_resource_owner(principal: Principal, resource: Resource) -> None:
    ownership = resolve_entity_ownership(principal, resource)
    if not principal.is_moderator and not ownership.is_owner:
        logger.warning(f"User {principal.user_id} denied club access changes on {resource}")
        raise AuthorizationError("You do not have permission to add this resource to a club")


def _require_contributor(principal: Principal, club_ids, existing_ids: set) -> None:
    """Every club must exist and be owned or administered by the principal."""
    club_ids = set(club_ids)
    if principal.is_moderator:
        missing = sorted(club_ids - existing_ids)
        if missing:
            raise NotFoundError('Club', missing[0])
        return

    contributing = {c.id for c in user_contributing_clubs(principal.user_id, club_ids)}
    if not club_ids <= contributing:
        logger.warning(
            f"User {principal.user_id} denied access to clubs {sorted(club_ids - contributing)}"
        )
        raise AuthorizationError(
            "You do not have permission to add this resource to one of the provided clubs"
        )


def _require_tiers_in_clubs(entries: list[ClubAccess]) -> None:
    pairs = [(t, entry.club_id) for entry in entries for t in entry.club_tier_ids]
    if not pairs:
        return
    tier_clubs = dict(
        ClubTier.objects.filter(id__in=[t for t, _ in pairs]).values_list('id', 'club_id')
    )
    for tier_id, club_id in pairs:
        if tier_clubs.get(tier_id) != club_id:
            raise BadRequestError(f"Tier {tier_id} does not belong to club {club_id}")


def grant_club_access(principal: Principal, resource: Resource, clubs) -> ResourceEntitlement:
    """
    Set which clubs and tiers gate a resource.

    Each entry is a ClubAccess (or a dict with 'club_id' and optional
    'club_tier_ids'). A bare club grants club-level access; an entry with
    tier ids grants access to exactly those tiers.

    With an empty list, club and tier grants from every club the principal
    administers (every club, for moderators) are removed; grants from other
    clubs stay. Otherwise grants inside the id-space of the listed clubs
    (their ids plus all of their tier ids) are replaced by the requested
    set. Availability is recomputed from the remaining grants.

    Args:
        principal: The caller; must own the resource or be a moderator
        resource: The gated resource
        clubs: Requested club/tier access

    Returns:
        ResourceEntitlement after the change

    Raises:
        AuthorizationError: If the principal does not own the resource or
            does not contribute to every listed club. Nothing is written.
        BadRequestError: If a club is listed twice or a tier is not in its club
        NotFoundError: If the resource (or, for moderators, a club) is missing
    """
    entries = [_as_club_access(c) for c in clubs]
    club_ids = [e.club_id for e in entries]
    if len(set(club_ids)) != len(club_ids):
        raise BadRequestError("Each club can only be listed once")

    with atomic_with_timeouts():
        _require_resource_owner(principal, resource)

        if not entries:
            target_ids = _gating_club_ids(resource)
            if not principal.is_moderator:
                target_ids &= {c.id for c in user_contributing_clubs(principal.user_id, target_ids)}
            _lock_clubs(target_ids)
            desired = set()
        else:
            existing_ids = _lock_clubs(club_ids)
            _require_contributor(principal, club_ids, existing_ids)
            _require_tiers_in_clubs(entries)
            target_ids = set(club_ids)
            desired = set().union(*(e.accessors() for e in entries))

        added, removed = _reconcile(resource, _club_scope(target_ids), desired, principal.user_id)
        availability = sync_availability(resource)

    logger.info(
        f"Club access for {resource} set by user {principal.user_id}: "
        f"+{len(added)} -{len(removed)} grants, now {availability}"
    )
    return get_entitlement_state(resource, added, removed)


def update_club_access(
    principal: Principal,
    resource: Resource,
    club_id,
    club_tier_ids=(),
) -> ResourceEntitlement:
    """
    Replace one club's grants on a resource.

    No tier ids means club-level access; otherwise exactly the listed tiers.
    Grants from other clubs on the same resource are untouched.

    Raises:
        AuthorizationError: If the principal does not own the resource or
            does not contribute to the club
        BadRequestError: If a tier is not in the club
        NotFoundError: If the resource (or, for moderators, the club) is missing
    """
    entry = ClubAccess(club_id, tuple(club_tier_ids or ()))

    with atomic_with_timeouts():
        _require_resource_owner(principal, resource)
        existing_ids = _lock_clubs([entry.club_id])
        _require_contributor(principal, [entry.club_id], existing_ids)
        _require_tiers_in_clubs([entry])

        added, removed = _reconcile(
            resource,
            _club_scope([entry.club_id]),
            entry.accessors(),
            principal.user_id,
        )
        availability = sync_availability(resource)

    logger.info(
        f"Club {entry.club_id} access for {resource} updated by user {principal.user_id}: "
        f"+{len(added)} -{len(removed)} grants, now {availability}"
    )
    return get_entitlement_state(resource, added, removed)


def revoke_club_access(principal: Principal, resource: Resource, club_id) -> ResourceEntitlement:
    """
    Remove every club and tier grant one club holds on a resource.

    Allowed for moderators, the resource owner, the club owner and admins
    with ManageResources. The resource only becomes Public when no grant
    of any accessor type remains.

    Raises:
        AuthorizationError: If the principal may not remove the resource
        NotFoundError: If the club or resource does not exist
    """
    club_id = int(club_id)

    with atomic_with_timeouts():
        if not _lock_clubs([club_id]):
            raise NotFoundError('Club', club_id)

        permissions = resolve_club_permissions(principal, club_id)
        ownership = resolve_entity_ownership(principal, resource)
        can_remove = (
            principal.is_moderator
            or ownership.is_owner
            or permissions.is_owner
            or permissions.can(ClubAdminPermission.MANAGE_RESOURCES)
        )
        if not can_remove:
            logger.warning(f"User {principal.user_id} denied removing {resource} from club {club_id}")
            raise AuthorizationError(
                "You do not have permission to remove this resource from this club"
            )

        added, removed = _reconcile(resource, _club_scope([club_id]), set(), principal.user_id)
        availability = sync_availability(resource)

    logger.info(
        f"Club {club_id} access for {resource} revoked by user {principal.user_id}: "
        f"-{len(removed)} grants, now {availability}"
    )
    return get_entitlement_state(resource, added, removed)


def remove_accessors(accessors) -> list[Resource]:
    """
    Delete every grant held by the given accessors and resync availability.

    Used when clubs or tiers are deleted so no grant points at a missing
    accessor. Must run inside the caller's transaction.

    Returns:
        Resources whose grants changed
    """
    accessors = set(accessors)
    if not accessors:
        return []

    with atomic_with_timeouts():
        grants = EntityAccess.objects.for_accessors(accessors)
        affected = sorted(
            {
                Resource(entity_type, entity_id)
                for entity_type, entity_id in grants.values_list('access_to_type', 'access_to_id')
            },
            key=lambda r: (r.entity_type, r.entity_id),
        )
        grants.delete()

        for resource in affected:
            if ResourceRegistry.get(resource.entity_type) is None:
                logger.warning(f"Skipping availability sync for unregistered resource {resource}")
                continue
            sync_availability(resource)

    return affected
