"""
Ownership and permission resolution for clubs and gated resources.

This module answers three questions for every mutating operation:
- Is the principal the owner of this club or resource?
- Which club capabilities does the principal hold?
- Is the principal a platform moderator?

Owner and admin are independent facts combined here:
- The club owner holds every ClubAdminPermission without an admin row
- Moderators hold every capability on every club
- Admins hold exactly the permissions stored on their ClubAdmin row

Nothing in this module writes to the database.
"""

import logging
from dataclasses import dataclass, field

from django.db.models import Prefetch

from .exceptions import AuthorizationError, NotFoundError
from .models import ALL_CLUB_PERMISSIONS, Club, ClubAdmin
from .registry import Resource, ResourceRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """The caller of a club operation.

    Authentication happens elsewhere; django-clubs only authorizes.
    """

    user_id: int | None
    is_moderator: bool = False

    @classmethod
    def from_user(cls, user) -> "Principal":
        """Build a principal from a Django user.

        Users expose moderator status via an ``is_moderator`` attribute;
        superusers are treated as moderators.
        """
        if user is None or not getattr(user, 'is_authenticated', False):
            return cls(user_id=None)
        is_moderator = bool(getattr(user, 'is_moderator', False) or getattr(user, 'is_superuser', False))
        return cls(user_id=user.pk, is_moderator=is_moderator)


@dataclass(frozen=True)
class ClubPermissions:
    """Resolved facts about a principal on one club."""

    club_id: int
    is_owner: bool = False
    is_admin: bool = False
    is_moderator: bool = False
    capabilities: frozenset = field(default_factory=frozenset)

    @property
    def is_contributor(self) -> bool:
        """Owners and admins contribute to a club."""
        return self.is_owner or self.is_admin

    def can(self, capability: str) -> bool:
        return str(capability) in self.capabilities


@dataclass(frozen=True)
class EntityOwnership:
    """Whether a principal owns a resource."""

    resource: Resource
    is_owner: bool


def user_contributing_clubs(user_id, club_ids=None) -> list[Club]:
    """
    Return the clubs a user owns or administers.

    Each club gets an ``admin`` attribute holding the user's ClubAdmin row,
    or None when the user is the owner without an admin row.

    Args:
        user_id: The user to check
        club_ids: Optional list restricting which clubs are considered

    Returns:
        list[Club]: Contributed clubs, newest first
    """
    if user_id is None:
        return []

    clubs = Club.objects.contributed_by(user_id).prefetch_related(
        Prefetch(
            'admins',
            queryset=ClubAdmin.objects.filter(user_id=user_id),
            to_attr='principal_admins',
        )
    )
    if club_ids is not None:
        clubs = clubs.filter(id__in=list(club_ids))

    result = list(clubs)
    for club in result:
        club.admin = club.principal_admins[0] if club.principal_admins else None
    return result


def get_club_or_404(club_id) -> Club:
    """Fetch a club by id, raising NotFoundError when missing."""
    try:
        return Club.objects.get(pk=club_id)
    except Club.DoesNotExist:
        raise NotFoundError('Club', club_id)


def resolve_club_permissions(principal: Principal, club) -> ClubPermissions:
    """
    Resolve what a principal may do on a club.

    Args:
        principal: The caller
        club: A Club instance or club id

    Returns:
        ClubPermissions with the combined owner/admin/moderator facts

    Raises:
        NotFoundError: If a club id is given and the club does not exist
    """
    if not isinstance(club, Club):
        club = get_club_or_404(club)

    is_owner = principal.user_id is not None and club.user_id == principal.user_id
    admin = None
    if principal.user_id is not None:
        admin = ClubAdmin.objects.filter(club=club, user_id=principal.user_id).first()

    if is_owner or principal.is_moderator:
        capabilities = ALL_CLUB_PERMISSIONS
    elif admin is not None:
        capabilities = frozenset(admin.permissions or []) & ALL_CLUB_PERMISSIONS
    else:
        capabilities = frozenset()

    return ClubPermissions(
        club_id=club.pk,
        is_owner=is_owner,
        is_admin=admin is not None,
        is_moderator=principal.is_moderator,
        capabilities=capabilities,
    )


def require_club_capability(
    principal: Principal,
    club,
    capability: str,
    message: str | None = None,
) -> ClubPermissions:
    """
    Require a capability on a club, raising if it is missing.

    Raises:
        AuthorizationError: If the principal lacks the capability
        NotFoundError: If the club does not exist
    """
    permissions = resolve_club_permissions(principal, club)
    if not permissions.can(capability):
        logger.warning(
            f"User {principal.user_id} denied {capability} on club {permissions.club_id}"
        )
        raise AuthorizationError(
            message or f"You do not have permission to {capability} on this club"
        )
    return permissions


def resolve_entity_ownership(principal: Principal, resource: Resource) -> EntityOwnership:
    """
    Resolve whether a principal owns a resource.

    Ownership is looked up through the resource's registered type.

    Raises:
        BadRequestError: If the resource type is not registered
        NotFoundError: If the resource does not exist
    """
    resource_type = ResourceRegistry.require(resource.entity_type)
    owner_id = resource_type.get_owner_id(resource.entity_id)
    is_owner = principal.user_id is not None and owner_id == principal.user_id
    return EntityOwnership(resource=resource, is_owner=is_owner)
