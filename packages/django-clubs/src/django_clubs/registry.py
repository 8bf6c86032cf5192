"""Resource type registry for gate-able entities.

Clubs gate resources that live in other apps (model versions, articles,
posts). Each app registers its resource types here; the entitlement
services only ever touch a resource's own table through its ResourceType.

Usage:
    from django_clubs.registry import ResourceRegistry, ResourceType

    ResourceRegistry.register(ResourceType(
        name='Article',
        model='articles.Article',
        owner_field='user',
        title_field='title',
    ))
"""

from dataclasses import dataclass
from typing import Any, Callable

from django.apps import apps

from .exceptions import BadRequestError, NotFoundError


@dataclass(frozen=True)
class Resource:
    """An (entity_type, entity_id) pair identifying a gate-able object."""

    entity_type: str
    entity_id: int

    def __post_init__(self):
        object.__setattr__(self, 'entity_id', int(self.entity_id))

    def __str__(self):
        return f"{self.entity_type}:{self.entity_id}"


@dataclass
class ResourceType:
    """Definition of a gate-able resource type.

    Attributes:
        name: Entity type name stored in EntityAccess.access_to_type
        model: Model class or 'app_label.ModelName'
        owner_field: Lookup path to the owning user (e.g. 'model__user')
        availability_field: Field holding the Public/Private flag
        title_field: Field used for default display data
        select_related: Relations to join when building display data
        display: Optional callable(instance) -> dict for display data
        availability_handler: Optional callable(entity_ids, availability)
            replacing the default queryset update
    """

    name: str
    model: Any
    owner_field: str = 'user'
    availability_field: str = 'availability'
    title_field: str = 'name'
    select_related: tuple = ()
    display: Callable[[Any], dict] | None = None
    availability_handler: Callable[[list, str], None] | None = None

    def get_model(self):
        if isinstance(self.model, str):
            return apps.get_model(self.model)
        return self.model

    def queryset(self):
        return self.get_model()._default_manager.all()

    def get_owner_id(self, entity_id):
        """Return the owning user id for an entity.

        Raises:
            NotFoundError: If the entity does not exist.
        """
        owner_ids = list(
            self.queryset().filter(pk=entity_id).values_list(self.owner_field, flat=True)[:1]
        )
        if not owner_ids:
            raise NotFoundError(self.name, entity_id)
        return owner_ids[0]

    def set_availability(self, entity_ids, availability: str) -> None:
        if self.availability_handler is not None:
            self.availability_handler(list(entity_ids), availability)
            return
        self.queryset().filter(pk__in=list(entity_ids)).update(
            **{self.availability_field: availability}
        )

    def get_availability(self, entity_id):
        values = list(
            self.queryset().filter(pk=entity_id).values_list(self.availability_field, flat=True)[:1]
        )
        return values[0] if values else None

    def display_data(self, entity_ids) -> dict:
        """Return {entity_id: display dict} for the given ids."""
        queryset = self.queryset().filter(pk__in=list(entity_ids))
        if self.select_related:
            queryset = queryset.select_related(*self.select_related)

        data = {}
        for instance in queryset:
            if self.display is not None:
                data[instance.pk] = self.display(instance)
            else:
                data[instance.pk] = {
                    'id': instance.pk,
                    self.title_field: getattr(instance, self.title_field, ''),
                }
        return data


class ResourceRegistry:
    """Central registry for gate-able resource types."""

    _types: dict[str, ResourceType] = {}

    @classmethod
    def register(cls, resource_type: ResourceType) -> None:
        """Register a resource type."""
        cls._types[resource_type.name] = resource_type

    @classmethod
    def unregister(cls, name: str) -> None:
        """Unregister a resource type by name."""
        cls._types.pop(name, None)

    @classmethod
    def get(cls, name: str) -> ResourceType | None:
        """Get a resource type by name."""
        return cls._types.get(name)

    @classmethod
    def require(cls, name: str) -> ResourceType:
        """Get a resource type by name, raising if it is not supported."""
        resource_type = cls._types.get(name)
        if resource_type is None:
            raise BadRequestError(f"Unsupported club resource type: {name}")
        return resource_type

    @classmethod
    def all(cls) -> list[ResourceType]:
        """Get all registered resource types."""
        return list(cls._types.values())

    @classmethod
    def clear(cls) -> None:
        """Clear all registered types (for testing)."""
        cls._types.clear()


def set_availability(entity_type: str, entity_ids, availability: str) -> None:
    """Propagate a Public/Private flag to resources of one type."""
    ResourceRegistry.require(entity_type).set_availability(entity_ids, availability)
