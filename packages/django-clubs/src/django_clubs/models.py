"""Club, tier, membership and entity access models.

This module provides:
- Club: A creator community that owns tiers and gates resources
- ClubAdmin: Links a user to a club with a set of named capabilities
- ClubTier: A priced membership level within a club
- ClubMembership: A user's membership in a club tier
- EntityAccess: Denormalized grant table (resource -> accessor)

Key invariant:
- A resource is Public iff it has zero EntityAccess rows of any accessor type.
  The entitlement services recompute availability after every grant change.
"""

from dataclasses import dataclass

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Availability(models.TextChoices):
    """Denormalized gate state stored on each resource."""

    PUBLIC = 'Public', _('Public')
    PRIVATE = 'Private', _('Private')


class AccessorType(models.TextChoices):
    """Kinds of accessor that can hold a grant."""

    CLUB = 'Club', _('Club')
    CLUB_TIER = 'ClubTier', _('Club tier')
    USER = 'User', _('User')


class ClubAdminPermission(models.TextChoices):
    """Named capabilities an admin can hold on a club."""

    MANAGE_MEMBERSHIPS = 'ManageMemberships', _('Manage memberships')
    MANAGE_TIERS = 'ManageTiers', _('Manage tiers')
    MANAGE_RESOURCES = 'ManageResources', _('Manage resources')
    MANAGE_CLUB = 'ManageClub', _('Manage club')
    MANAGE_POSTS = 'ManagePosts', _('Manage posts')
    VIEW_REVENUE = 'ViewRevenue', _('View revenue')
    WITHDRAW_REVENUE = 'WithdrawRevenue', _('Withdraw revenue')


ALL_CLUB_PERMISSIONS = frozenset(ClubAdminPermission.values)


@dataclass(frozen=True)
class Accessor:
    """Tagged accessor variant: which kind of grantee, and its id."""

    kind: str
    id: int

    def __post_init__(self):
        # Enum members hash by name; store the plain value so sets compare
        object.__setattr__(self, 'kind', str(self.kind))
        object.__setattr__(self, 'id', int(self.id))

    @classmethod
    def club(cls, club_id) -> "Accessor":
        return cls(AccessorType.CLUB, club_id)

    @classmethod
    def tier(cls, tier_id) -> "Accessor":
        return cls(AccessorType.CLUB_TIER, tier_id)

    @classmethod
    def user(cls, user_id) -> "Accessor":
        return cls(AccessorType.USER, user_id)


class ClubQuerySet(models.QuerySet):
    """Custom queryset for Club model."""

    def listed(self):
        """Return clubs visible in browse listings."""
        return self.filter(unlisted=False)

    def contributed_by(self, user_id):
        """Return clubs the user owns or administers."""
        return self.filter(
            models.Q(user_id=user_id) | models.Q(admins__user_id=user_id)
        ).distinct()


class Club(models.Model):
    """
    A creator community that can own tiers and gate resources.

    Usage:
        club = Club.objects.create(user=creator, name="Sketch Club")
        club.tiers.create(name="Supporter", unit_amount=500)
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='owned_clubs',
        verbose_name=_('owner'),
    )
    name = models.CharField(_('name'), max_length=255)
    description = models.TextField(_('description'), blank=True, default='')
    nsfw = models.BooleanField(_('nsfw'), default=False)
    billing = models.BooleanField(
        _('billing'),
        default=True,
        help_text=_('Whether memberships in this club are billed'),
    )
    unlisted = models.BooleanField(
        _('unlisted'),
        default=False,
        help_text=_('Hidden from browse listings'),
    )

    # Image ids reference the external image store
    avatar_id = models.PositiveBigIntegerField(null=True, blank=True)
    cover_image_id = models.PositiveBigIntegerField(null=True, blank=True)
    header_image_id = models.PositiveBigIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ClubQuerySet.as_manager()

    class Meta:
        app_label = 'django_clubs'
        ordering = ['-id']

    def __str__(self):
        return self.name


class ClubAdmin(models.Model):
    """Grants a user a set of named capabilities on a club.

    The club owner never needs a ClubAdmin row; ownership implies every
    capability (see django_clubs.permissions).
    """

    club = models.ForeignKey(
        Club,
        on_delete=models.CASCADE,
        related_name='admins',
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='club_admin_roles',
    )
    permissions = models.JSONField(
        default=list,
        blank=True,
        help_text=_('List of ClubAdminPermission values'),
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        app_label = 'django_clubs'
        constraints = [
            models.UniqueConstraint(
                fields=['club', 'user'],
                name='unique_club_admin',
            ),
        ]

    def __str__(self):
        return f"{self.user} admin of {self.club}"

    def has_permission(self, permission: str) -> bool:
        return permission in (self.permissions or [])


class ClubTierQuerySet(models.QuerySet):
    """Custom queryset for ClubTier model."""

    def with_member_count(self):
        """Annotate each tier with its number of memberships."""
        return self.annotate(member_count=models.Count('memberships', distinct=True))


class ClubTier(models.Model):
    """A priced membership level within a club."""

    club = models.ForeignKey(
        Club,
        on_delete=models.CASCADE,
        related_name='tiers',
    )
    name = models.CharField(_('name'), max_length=255)
    description = models.TextField(_('description'), blank=True, default='')
    unit_amount = models.PositiveIntegerField(
        _('unit amount'),
        default=0,
        help_text=_('Price per billing period in the smallest currency unit'),
    )
    currency = models.CharField(_('currency'), max_length=10, default='BUZZ')
    member_limit = models.PositiveIntegerField(
        _('member limit'),
        null=True,
        blank=True,
        help_text=_('Maximum number of members (null = unlimited)'),
    )
    unlisted = models.BooleanField(
        _('unlisted'),
        default=False,
        help_text=_('Hidden from browse'),
    )
    joinable = models.BooleanField(
        _('joinable'),
        default=True,
        help_text=_('Open to new signups'),
    )
    cover_image_id = models.PositiveBigIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ClubTierQuerySet.as_manager()

    class Meta:
        app_label = 'django_clubs'
        ordering = ['unit_amount', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['club', 'name'],
                name='unique_club_tier_name',
            ),
        ]

    def __str__(self):
        return f"{self.club} / {self.name}"

    @property
    def remaining_spots(self):
        """Spots left before member_limit is reached (None = unlimited).

        Uses the ``member_count`` annotation when present.
        """
        if self.member_limit is None:
            return None
        count = getattr(self, 'member_count', None)
        if count is None:
            count = self.memberships.count()
        return max(0, self.member_limit - count)


class ClubMembership(models.Model):
    """A user's membership in a club tier.

    club_tier uses RESTRICT: a tier with members cannot be deleted on its
    own, but deleting the whole club removes tiers and memberships together.
    """

    club = models.ForeignKey(
        Club,
        on_delete=models.CASCADE,
        related_name='memberships',
    )
    club_tier = models.ForeignKey(
        ClubTier,
        on_delete=models.RESTRICT,
        related_name='memberships',
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='club_memberships',
    )
    unit_amount = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=10, default='BUZZ')
    started_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    downgrade_club_tier = models.ForeignKey(
        ClubTier,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='pending_downgrades',
    )

    class Meta:
        app_label = 'django_clubs'
        constraints = [
            models.UniqueConstraint(
                fields=['club', 'user'],
                name='unique_club_membership',
            ),
        ]

    def __str__(self):
        return f"{self.user} in {self.club_tier}"


class EntityAccessQuerySet(models.QuerySet):
    """Custom queryset for EntityAccess model."""

    def for_resource(self, resource):
        """Return grants on a single resource."""
        return self.filter(
            access_to_type=resource.entity_type,
            access_to_id=resource.entity_id,
        )

    def for_resources(self, resources):
        """Return grants on any of the given resources."""
        condition = models.Q(pk__in=[])
        for resource in resources:
            condition |= models.Q(
                access_to_type=resource.entity_type,
                access_to_id=resource.entity_id,
            )
        return self.filter(condition)

    def for_accessors(self, accessors):
        """Return grants held by any of the given accessors.

        Filtering is always by explicit accessor ids per kind.
        """
        by_kind = {}
        for accessor in accessors:
            by_kind.setdefault(accessor.kind, set()).add(accessor.id)

        condition = models.Q(pk__in=[])
        for kind, ids in by_kind.items():
            condition |= models.Q(accessor_type=kind, accessor_id__in=sorted(ids))
        return self.filter(condition)

    def club_scoped(self):
        """Return only Club and ClubTier grants."""
        return self.filter(
            accessor_type__in=[AccessorType.CLUB, AccessorType.CLUB_TIER],
        )


class EntityAccess(models.Model):
    """
    A grant: some accessor (club, tier or user) may access some resource.

    Rows are never updated in place. The entitlement services add and
    remove them as sets inside one transaction.

    Usage:
        EntityAccess.objects.for_resource(resource).club_scoped()
    """

    access_to_id = models.PositiveBigIntegerField(db_index=True)
    access_to_type = models.CharField(max_length=50)
    accessor_id = models.PositiveBigIntegerField()
    accessor_type = models.CharField(max_length=20, choices=AccessorType.choices)
    added_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = EntityAccessQuerySet.as_manager()

    class Meta:
        app_label = 'django_clubs'
        verbose_name_plural = 'entity access'
        constraints = [
            models.UniqueConstraint(
                fields=['access_to_id', 'access_to_type', 'accessor_id', 'accessor_type'],
                name='unique_entity_access',
            ),
        ]
        indexes = [
            models.Index(fields=['access_to_type', 'access_to_id']),
            models.Index(fields=['accessor_type', 'accessor_id']),
        ]

    def __str__(self):
        return f"{self.accessor_type}:{self.accessor_id} -> {self.access_to_type}:{self.access_to_id}"

    @property
    def accessor(self) -> Accessor:
        return Accessor(self.accessor_type, self.accessor_id)
