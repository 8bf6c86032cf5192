"""Django Clubs - Club memberships, tiers and resource entitlements."""

__version__ = "0.1.0"

__all__ = [
    # Models
    "Club",
    "ClubAdmin",
    "ClubTier",
    "ClubMembership",
    "EntityAccess",
    # Enums
    "Availability",
    "AccessorType",
    "ClubAdminPermission",
    # Permissions
    "Principal",
    # Registry
    "Resource",
    "ResourceRegistry",
    "ResourceType",
    # Services
    "grant_club_access",
    "update_club_access",
    "revoke_club_access",
    "get_club_details_for_resources",
    # Exceptions
    "ClubsError",
    "AuthorizationError",
    "BadRequestError",
    "NotFoundError",
    "DatabaseError",
]

_MODELS = ("Club", "ClubAdmin", "ClubTier", "ClubMembership", "EntityAccess")
_ENUMS = ("Availability", "AccessorType", "ClubAdminPermission")
_SERVICES = (
    "grant_club_access",
    "update_club_access",
    "revoke_club_access",
    "get_club_details_for_resources",
)
_EXCEPTIONS = (
    "ClubsError",
    "AuthorizationError",
    "BadRequestError",
    "NotFoundError",
    "DatabaseError",
)


def __getattr__(name: str):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name in _MODELS or name in _ENUMS:
        from . import models

        return getattr(models, name)
    if name == "Principal":
        from .permissions import Principal

        return Principal
    if name in ("Resource", "ResourceRegistry", "ResourceType"):
        from . import registry

        return getattr(registry, name)
    if name in _SERVICES:
        from . import services

        return getattr(services, name)
    if name in _EXCEPTIONS:
        from . import exceptions

        return getattr(exceptions, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
