"""Tests for django-clubs models."""

import pytest
from django.db import IntegrityError
from django.db.models import RestrictedError

from django_clubs.models import (
    Accessor,
    AccessorType,
    Club,
    ClubAdmin,
    ClubAdminPermission,
    ClubMembership,
    ClubTier,
    EntityAccess,
)
from django_clubs.registry import Resource


class TestAccessor:

    def test_enum_and_plain_kinds_are_equal(self):
        assert Accessor(AccessorType.CLUB, 1) == Accessor('Club', '1')
        assert len({Accessor.club(1), Accessor('Club', 1)}) == 1

    def test_kinds_stay_distinct(self):
        assert Accessor.club(1) != Accessor.tier(1)


@pytest.mark.django_db
class TestClubModel:
    """Test suite for Club and ClubAdmin."""

    def test_listed(self, club, outsider):
        Club.objects.create(user=outsider, name='Hidden', unlisted=True)

        assert list(Club.objects.listed()) == [club]

    def test_contributed_by_does_not_duplicate(self, owner, club):
        ClubAdmin.objects.create(club=club, user=owner, permissions=[])

        assert list(Club.objects.contributed_by(owner.pk)) == [club]

    def test_admin_has_permission(self, club_admin):
        assert club_admin.has_permission(ClubAdminPermission.MANAGE_TIERS)
        assert not club_admin.has_permission(ClubAdminPermission.VIEW_REVENUE)

    def test_one_admin_row_per_user(self, club_admin, club, admin_user):
        with pytest.raises(IntegrityError):
            ClubAdmin.objects.create(club=club, user=admin_user)


@pytest.mark.django_db
class TestClubTierModel:
    """Test suite for ClubTier."""

    def test_tier_names_are_unique_per_club(self, club, tier_one):
        with pytest.raises(IntegrityError):
            ClubTier.objects.create(club=club, name=tier_one.name)

    def test_same_name_in_other_club(self, other_club, tier_one):
        ClubTier.objects.create(club=other_club, name=tier_one.name)

    def test_remaining_spots(self, club, outsider):
        tier = ClubTier.objects.create(club=club, name='Limited', member_limit=2)
        ClubMembership.objects.create(club=club, club_tier=tier, user=outsider)

        assert tier.remaining_spots == 1
        assert ClubTier.objects.with_member_count().get(pk=tier.pk).remaining_spots == 1

    def test_unlimited_tier(self, tier_one):
        assert tier_one.remaining_spots is None

    def test_tier_with_members_cannot_be_deleted(self, club, tier_one, outsider):
        ClubMembership.objects.create(club=club, club_tier=tier_one, user=outsider)

        with pytest.raises(RestrictedError):
            tier_one.delete()


@pytest.mark.django_db
class TestEntityAccessModel:
    """Test suite for EntityAccess and its queryset."""

    def grant(self, resource, accessor):
        return EntityAccess.objects.create(
            access_to_type=resource.entity_type,
            access_to_id=resource.entity_id,
            accessor_type=accessor.kind,
            accessor_id=accessor.id,
        )

    def test_grant_is_unique(self):
        resource = Resource('Article', 1)
        self.grant(resource, Accessor.club(1))

        with pytest.raises(IntegrityError):
            self.grant(resource, Accessor.club(1))

    def test_for_resources(self):
        first, second, third = Resource('Article', 1), Resource('Article', 2), Resource('ModelVersion', 1)
        for resource in (first, second, third):
            self.grant(resource, Accessor.club(1))

        grants = EntityAccess.objects.for_resources([first, third])

        assert {(g.access_to_type, g.access_to_id) for g in grants} == {('Article', 1), ('ModelVersion', 1)}

    def test_for_accessors_matches_kind_and_id(self):
        resource = Resource('Article', 1)
        self.grant(resource, Accessor.club(1))
        self.grant(resource, Accessor.tier(1))
        self.grant(resource, Accessor.tier(2))

        grants = EntityAccess.objects.for_accessors([Accessor.tier(1), Accessor.tier(2)])

        assert {g.accessor for g in grants} == {Accessor.tier(1), Accessor.tier(2)}

    def test_empty_accessor_list_matches_nothing(self):
        self.grant(Resource('Article', 1), Accessor.club(1))

        assert not EntityAccess.objects.for_accessors([]).exists()

    def test_club_scoped_excludes_user_grants(self):
        resource = Resource('Article', 1)
        self.grant(resource, Accessor.club(1))
        self.grant(resource, Accessor.user(1))

        grants = EntityAccess.objects.for_resource(resource).club_scoped()

        assert [g.accessor for g in grants] == [Accessor.club(1)]
