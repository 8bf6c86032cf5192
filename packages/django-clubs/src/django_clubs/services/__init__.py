"""django-clubs services.

Re-exports all services for convenient importing.
"""

from .clubs import (
    create_club,
    delete_club,
    get_club,
    list_clubs,
    update_club,
    upsert_club,
)
from .entitlements import (
    ClubAccess,
    EntitlementState,
    ResourceEntitlement,
    get_entitlement_state,
    grant_club_access,
    remove_accessors,
    revoke_club_access,
    sync_availability,
    update_club_access,
)
from .resources import (
    ClubRequirement,
    ResourceClubDetails,
    get_club_details_for_resources,
    get_paginated_club_resources,
)
from .tiers import (
    list_club_tiers,
    lock_club,
    replace_club_tiers,
    upsert_club_tiers,
)

__all__ = [
    # Club services
    "create_club",
    "delete_club",
    "get_club",
    "list_clubs",
    "update_club",
    "upsert_club",
    # Entitlement services
    "ClubAccess",
    "EntitlementState",
    "ResourceEntitlement",
    "get_entitlement_state",
    "grant_club_access",
    "remove_accessors",
    "revoke_club_access",
    "sync_availability",
    "update_club_access",
    # Resource projections
    "ClubRequirement",
    "ResourceClubDetails",
    "get_club_details_for_resources",
    "get_paginated_club_resources",
    # Tier services
    "list_club_tiers",
    "lock_club",
    "replace_club_tiers",
    "upsert_club_tiers",
]
