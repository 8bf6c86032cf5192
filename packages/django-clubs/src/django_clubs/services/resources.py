"""Read-side projections of club-gated resources.

Provides:
- get_club_details_for_resources: Which clubs/tiers gate each resource
- get_paginated_club_resources: Page through the resources one club gates
"""

import math
from dataclasses import dataclass, field

from django.db.models import Exists, OuterRef

from ..exceptions import BadRequestError, NotFoundError
from ..models import Accessor, AccessorType, Club, ClubTier, EntityAccess
from ..registry import Resource, ResourceRegistry


@dataclass(frozen=True)
class ClubRequirement:
    """One club gating a resource.

    ``club_tier_ids`` is empty when the club grants club-level access.
    """

    club_id: int
    club_name: str
    club_tier_ids: list = field(default_factory=list)
    club_tier_names: list = field(default_factory=list)

    @property
    def is_general(self) -> bool:
        return not self.club_tier_ids


@dataclass(frozen=True)
class ResourceClubDetails:
    resource: Resource
    clubs: list = field(default_factory=list)
    data: dict = field(default_factory=dict)

    @property
    def requires_club(self) -> bool:
        return bool(self.clubs)


def _display_data(resources) -> dict:
    """Return {Resource: display dict}, empty for unregistered types."""
    ids_by_type = {}
    for resource in resources:
        ids_by_type.setdefault(resource.entity_type, set()).add(resource.entity_id)

    data = {}
    for entity_type, ids in ids_by_type.items():
        resource_type = ResourceRegistry.get(entity_type)
        if resource_type is None:
            continue
        for entity_id, payload in resource_type.display_data(ids).items():
            data[Resource(entity_type, entity_id)] = payload
    return data


def get_club_details_for_resources(resources) -> list[ResourceClubDetails]:
    """
    Project the club/tier grants of each resource.

    Club-level grants produce a requirement with no tiers; tier grants are
    grouped under their owning club. Resources without club grants get an
    empty ``clubs`` list. Order of the input is preserved.

    Args:
        resources: Iterable of Resource

    Returns:
        list[ResourceClubDetails]
    """
    resources = [
        r if isinstance(r, Resource) else Resource(r['entity_type'], r['entity_id'])
        for r in resources
    ]
    if not resources:
        return []

    grants = list(
        EntityAccess.objects.for_resources(resources)
        .club_scoped()
        .values_list('access_to_type', 'access_to_id', 'accessor_type', 'accessor_id')
    )

    tier_ids = {accessor_id for _, _, kind, accessor_id in grants if kind == AccessorType.CLUB_TIER}
    tiers = {t.id: t for t in ClubTier.objects.filter(id__in=tier_ids)}
    club_ids = {accessor_id for _, _, kind, accessor_id in grants if kind == AccessorType.CLUB}
    club_ids |= {t.club_id for t in tiers.values()}
    club_names = dict(Club.objects.filter(id__in=club_ids).values_list('id', 'name'))

    # resource -> club_id -> [tiers]
    gated = {}
    for entity_type, entity_id, kind, accessor_id in grants:
        by_club = gated.setdefault(Resource(entity_type, entity_id), {})
        if kind == AccessorType.CLUB:
            by_club.setdefault(accessor_id, [])
        else:
            tier = tiers.get(accessor_id)
            if tier is not None:
                by_club.setdefault(tier.club_id, []).append(tier)

    data = _display_data(resources)
    details = []
    for resource in resources:
        requirements = []
        for club_id, club_tiers in sorted(gated.get(resource, {}).items()):
            if club_id not in club_names:
                continue
            club_tiers = sorted(club_tiers, key=lambda t: t.id)
            requirements.append(
                ClubRequirement(
                    club_id=club_id,
                    club_name=club_names[club_id],
                    club_tier_ids=[t.id for t in club_tiers],
                    club_tier_names=[t.name for t in club_tiers],
                )
            )
        details.append(
            ResourceClubDetails(resource=resource, clubs=requirements, data=data.get(resource, {}))
        )
    return details


def get_paging_data(items: list, total_items: int, limit: int, page: int) -> dict:
    return {
        'items': items,
        'total_items': total_items,
        'current_page': page,
        'page_size': limit,
        'total_pages': math.ceil(total_items / limit) if total_items else 0,
    }


def get_paginated_club_resources(club_id, club_tier_id=None, page: int = 1, limit: int = 20) -> dict:
    """
    Page through the resources a club gates, newest entity id first.

    Each item lists only this club's tier ids on the resource. With
    ``club_tier_id``, only resources gated by that tier are returned,
    still with every tier of this club they are available on.

    Returns:
        dict with items, total_items, current_page, page_size, total_pages

    Raises:
        BadRequestError: If page or limit is below 1
        NotFoundError: If the club does not exist
    """
    page, limit = int(page), int(limit)
    if page < 1 or limit < 1:
        raise BadRequestError("page and limit must be positive")
    club_id = int(club_id)
    if not Club.objects.filter(pk=club_id).exists():
        raise NotFoundError('Club', club_id)

    tier_ids = set(ClubTier.objects.filter(club_id=club_id).values_list('id', flat=True))
    if club_tier_id is not None and int(club_tier_id) not in tier_ids:
        return get_paging_data([], 0, limit, page)

    scope = {Accessor.club(club_id)} | {Accessor.tier(t) for t in tier_ids}
    grants = EntityAccess.objects.for_accessors(scope)
    if club_tier_id is not None:
        grants = grants.filter(
            Exists(
                EntityAccess.objects.filter(
                    accessor_type=AccessorType.CLUB_TIER,
                    accessor_id=int(club_tier_id),
                    access_to_type=OuterRef('access_to_type'),
                    access_to_id=OuterRef('access_to_id'),
                )
            )
        )

    keys = grants.values('access_to_type', 'access_to_id').distinct()
    total_items = keys.count()
    offset = (page - 1) * limit
    page_keys = list(keys.order_by('-access_to_id', 'access_to_type')[offset:offset + limit])
    resources = [Resource(k['access_to_type'], k['access_to_id']) for k in page_keys]

    resource_tiers = {}
    tier_grants = (
        EntityAccess.objects.for_resources(resources)
        .filter(accessor_type=AccessorType.CLUB_TIER, accessor_id__in=sorted(tier_ids))
        .values_list('access_to_type', 'access_to_id', 'accessor_id')
    )
    for entity_type, entity_id, accessor_id in tier_grants:
        resource_tiers.setdefault(Resource(entity_type, entity_id), []).append(accessor_id)

    data = _display_data(resources)
    items = [
        {
            'entity_id': resource.entity_id,
            'entity_type': resource.entity_type,
            'club_id': club_id,
            'club_tier_ids': sorted(resource_tiers.get(resource, [])),
            'data': data.get(resource, {}),
        }
        for resource in resources
    ]
    return get_paging_data(items, total_items, limit, page)
