"""Pytest configuration for django-clubs tests."""

import pytest


@pytest.fixture(autouse=True)
def resource_types():
    """Register the test app's gate-able resources."""
    from django_clubs.registry import ResourceRegistry, ResourceType

    ResourceRegistry.clear()
    ResourceRegistry.register(ResourceType(
        name='ModelVersion',
        model='tests.ModelVersion',
        owner_field='model__user',
        select_related=('model',),
        display=lambda mv: {
            'id': mv.model_id,
            'name': mv.model.name,
            'model_version': {'id': mv.pk, 'name': mv.name},
        },
    ))
    ResourceRegistry.register(ResourceType(
        name='Article',
        model='tests.Article',
        title_field='title',
    ))
    yield
    ResourceRegistry.clear()


@pytest.fixture
def ledger(settings):
    """Swap in a recording ledger backend."""
    from django_clubs.conf import clear_backend_cache, get_ledger_backend

    settings.CLUBS_LEDGER_BACKEND = 'tests.backends.RecordingLedgerBackend'
    clear_backend_cache()
    yield get_ledger_backend()
    clear_backend_cache()


@pytest.fixture
def image_backend(settings):
    """Swap in a recording image backend."""
    from django_clubs.conf import clear_backend_cache, get_image_backend

    settings.CLUBS_IMAGE_BACKEND = 'tests.backends.RecordingImageBackend'
    clear_backend_cache()
    yield get_image_backend()
    clear_backend_cache()


@pytest.fixture
def owner(db):
    """The creator: owns the club and the resources."""
    from tests.models import User

    return User.objects.create_user(username='owner', password='test')


@pytest.fixture
def admin_user(db):
    from tests.models import User

    return User.objects.create_user(username='admin', password='test')


@pytest.fixture
def outsider(db):
    """A user with no relation to any club."""
    from tests.models import User

    return User.objects.create_user(username='outsider', password='test')


@pytest.fixture
def moderator(db):
    from tests.models import User

    return User.objects.create_user(username='moderator', password='test', is_moderator=True)


@pytest.fixture
def owner_principal(owner):
    from django_clubs.permissions import Principal

    return Principal.from_user(owner)


@pytest.fixture
def admin_principal(admin_user):
    from django_clubs.permissions import Principal

    return Principal.from_user(admin_user)


@pytest.fixture
def outsider_principal(outsider):
    from django_clubs.permissions import Principal

    return Principal.from_user(outsider)


@pytest.fixture
def moderator_principal(moderator):
    from django_clubs.permissions import Principal

    return Principal.from_user(moderator)


@pytest.fixture
def club(owner):
    from django_clubs.models import Club

    return Club.objects.create(user=owner, name='Sketch Club')


@pytest.fixture
def tier_one(club):
    from django_clubs.models import ClubTier

    return ClubTier.objects.create(club=club, name='Supporter', unit_amount=500)


@pytest.fixture
def tier_two(club):
    from django_clubs.models import ClubTier

    return ClubTier.objects.create(club=club, name='Patron', unit_amount=1000)


@pytest.fixture
def other_club(db, owner):
    """A second club the resource owner administers but does not own."""
    from django_clubs.models import Club, ClubAdmin
    from tests.models import User

    other_owner = User.objects.create_user(username='other-owner', password='test')
    other = Club.objects.create(user=other_owner, name='Ink Club')
    ClubAdmin.objects.create(club=other, user=owner, permissions=[])
    return other


@pytest.fixture
def other_tier(other_club):
    from django_clubs.models import ClubTier

    return ClubTier.objects.create(club=other_club, name='Inker', unit_amount=300)


@pytest.fixture
def club_admin(club, admin_user):
    """admin_user administers club with resource and tier management."""
    from django_clubs.models import ClubAdmin, ClubAdminPermission

    return ClubAdmin.objects.create(
        club=club,
        user=admin_user,
        permissions=[ClubAdminPermission.MANAGE_RESOURCES, ClubAdminPermission.MANAGE_TIERS],
    )


@pytest.fixture
def model_version(owner):
    from tests.models import Model, ModelVersion

    model = Model.objects.create(user=owner, name='Sketchy')
    return ModelVersion.objects.create(model=model, name='v1')


@pytest.fixture
def article(owner):
    from tests.models import Article

    return Article.objects.create(user=owner, title='How to sketch')


@pytest.fixture
def resource(model_version):
    """The ModelVersion as a gate-able resource."""
    from django_clubs.registry import Resource

    return Resource('ModelVersion', model_version.pk)


@pytest.fixture
def article_resource(article):
    from django_clubs.registry import Resource

    return Resource('Article', article.pk)
