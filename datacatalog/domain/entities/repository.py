"""
Entity repository for a single catalog.

Wraps the storage entity store with entity type validation, created/modified
stamping, cascading deletes of dependent entities and data, and lifecycle
observers. ``transact`` returns a repository bound to an open transaction so
the import pipeline can read and create entities inside its own transaction.
"""
import logging
from typing import Any, Callable, List, Optional, Sequence, Union

from datacatalog.core.config import settings
from datacatalog.domain.entities.models import Entity, EntityType
from datacatalog.domain.entities import query as q
from datacatalog.utils.clock import SystemClock

logger = logging.getLogger(__name__)

Observer = Callable[[str, str, EntityType, Any], None]


class InvalidEntityError(ValueError):
    """Raised when entities or entity types handed to the repository are invalid."""


def validate_entity_type(entity_type: Union[str, EntityType]) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError:
        raise InvalidEntityError(f"Invalid entity type: {entity_type}")


def _to_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


class EntityRepository:
    def __init__(self, storage, catalog: Optional[str] = None, clock=None, observers: Optional[List[Observer]] = None):
        self.storage = storage
        self.catalog = catalog or settings.catalog
        self.clock = clock or SystemClock()
        self._observers: List[Observer] = observers if observers is not None else []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register ``observer(phase, action, entity_type, payload)``.

        ``phase`` is ``"before"`` or ``"after"``, ``action`` one of
        ``create``/``update``/``delete``; ``payload`` is the entity (or the id
        for deletes). Returns a callable that removes the observer.
        """
        self._observers.append(observer)
        return lambda: self._observers.remove(observer)

    def _notify(self, phase: str, action: str, entity_type: EntityType, payload: Any) -> None:
        for observer in list(self._observers):
            observer(phase, action, entity_type, payload)

    def transact(self, trx) -> "EntityRepository":
        """Repository view that runs every operation on the transaction handle ``trx``."""
        return EntityRepository(trx, self.catalog, self.clock, self._observers)

    # Queries

    def query_all(self, entity_type) -> List[Entity]:
        return self.storage.entities.query(self.catalog, validate_entity_type(entity_type))

    def query_by_id(self, entity_type, ids) -> List[Entity]:
        return self.storage.entities.query(
            self.catalog,
            validate_entity_type(entity_type),
            q.in_("id", _to_list(ids)),
        )

    def query(self, entity_type, expression=None, *, sort=None, take=None) -> List[Entity]:
        return self.storage.entities.query(
            self.catalog,
            validate_entity_type(entity_type),
            expression,
            sort=sort,
            take=take,
        )

    # Writes

    def create(self, entities) -> List[Entity]:
        entities = _to_list(entities)
        if any(e.id is not None for e in entities):
            raise InvalidEntityError("Entity objects must have empty id properties when inserting new records.")
        for e in entities:
            validate_entity_type(e.entity_type)

        now = self.clock.now()
        stamped = [e.model_copy(update={"created": now, "modified": now}) for e in entities]
        for e in stamped:
            self._notify("before", "create", e.entity_type, e)

        created = self.storage.entities.create(self.catalog, stamped)

        for e in created:
            self._notify("after", "create", e.entity_type, e)
        return created

    def update(self, entities) -> List[Entity]:
        entities = _to_list(entities)
        if any(e.id is None for e in entities):
            raise InvalidEntityError("Entity objects must not have empty id properties when updating records.")
        for e in entities:
            validate_entity_type(e.entity_type)

        now = self.clock.now()
        stamped = [e.model_copy(update={"modified": now}) for e in entities]
        for e in stamped:
            self._notify("before", "update", e.entity_type, e)

        updated = self.storage.entities.update(self.catalog, stamped)

        for e in updated:
            self._notify("after", "update", e.entity_type, e)
        return updated

    def delete(self, entity_type, ids) -> bool:
        """Delete entities and, recursively, everything that depends on them."""
        entity_type = validate_entity_type(entity_type)
        ids = _to_list(ids)
        if not ids:
            return True

        for entity_id in ids:
            self._notify("before", "delete", entity_type, entity_id)

        def delete_in_transaction(trx, commit, rollback):
            EntityRepository(trx, self.catalog, self.clock, self._observers)._delete_with_dependents(entity_type, ids)
            commit(True)

        self.storage.transact(delete_in_transaction)

        for entity_id in ids:
            self._notify("after", "delete", entity_type, entity_id)
        return True

    def _delete_with_dependents(self, entity_type: EntityType, ids: Sequence[int]) -> None:
        self.storage.entities.delete(self.catalog, entity_type, ids)
        logger.info("Deleted %s ids %s from catalog '%s'", entity_type.value, list(ids), self.catalog)

        if entity_type == EntityType.FOLDER:
            self._delete_matching(EntityType.FOLDER, q.in_("parent", ids))
            self._delete_matching(EntityType.DATA_SET, q.in_("folder", ids))
        elif entity_type == EntityType.DATA_SET:
            self._delete_matching(EntityType.VARIABLE, q.in_("scoped_data_set", ids))
            self.storage.data.delete(self.catalog, {"data_set": ids})
        elif entity_type == EntityType.VARIABLE:
            self._delete_matching(EntityType.ATTRIBUTE, q.in_("variable", ids))
            self.storage.data.delete(self.catalog, {"variable": ids})
        elif entity_type == EntityType.ATTRIBUTE:
            self._delete_matching(EntityType.ATTRIBUTE, q.in_("parent", ids))
            self.storage.data.delete(self.catalog, {"attribute": ids})

    def _delete_matching(self, entity_type: EntityType, expression) -> None:
        found = [e.id for e in self.query(entity_type, expression)]
        if found:
            self._delete_with_dependents(entity_type, found)

    # Hierarchy

    def get_parent(self, entity: Entity) -> Optional[Entity]:
        if not entity.hierarchical:
            raise InvalidEntityError(f"{entity.entity_type.value} is not a hierarchical item")
        if entity.parent is None:
            return None
        found = self.query(entity.entity_type, q.eq("id", entity.parent))
        return found[0] if found else None

    def get_children(self, entity: Entity) -> List[Entity]:
        if not entity.hierarchical:
            raise InvalidEntityError(f"{entity.entity_type.value} is not a hierarchical item")
        return self.query(entity.entity_type, q.eq("parent", entity.id))
