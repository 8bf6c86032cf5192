"""Django app configuration for django-clubs."""

from django.apps import AppConfig


class DjangoClubsConfig(AppConfig):
    """App configuration for django-clubs."""

    name = 'django_clubs'
    verbose_name = 'Django Clubs'
    default_auto_field = 'django.db.models.BigAutoField'
