"""
SQLAlchemy-backed catalog storage.

``Storage`` exposes three stores that share one connection strategy:

- ``entities``: query/create/update/delete of catalog entities
- ``data``: create/query/delete of imported facts, grouped into individuals
- ``publish``: copy entities and facts from one catalog partition to another

Outside a transaction every store call runs in its own ``engine.begin()``
block. ``Storage.transact`` hands the callback a ``TransactionStorage`` whose
stores all run on the single open transaction connection.
"""
import logging
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, insert, literal, select, update
from sqlalchemy.engine import Connection, Engine

from datacatalog.db.models import ENTITY_TABLES, facts, publish_history
from datacatalog.domain.entities.models import (
    ENTITY_MODELS,
    CategoricalFact,
    Entity,
    EntityType,
    Individual,
    NumericalFact,
    TextFact,
    VariableType,
)
from datacatalog.domain.entities.query import (
    Expression,
    FIELD_ALIASES,
    InvalidFilterError,
    SortSpec,
    compile_filter,
)

logger = logging.getLogger(__name__)

ConnectionScope = Callable[[], Any]

FACT_FILTER_FIELDS = ("data_set", "variable", "attribute")


class TransactionTimeoutError(Exception):
    """Raised when a transaction outlives its caller-supplied timeout."""

    def __init__(self, timeout_seconds: float, message: str = None):
        self.timeout_seconds = timeout_seconds
        self.message = message or f"Transaction exceeded its timeout of {timeout_seconds} seconds."
        super().__init__(self.message)


def _entity_type(value) -> EntityType:
    return value if isinstance(value, EntityType) else EntityType(value)


def _row_to_entity(entity_type: EntityType, row) -> Entity:
    payload = dict(row._mapping)
    payload.pop("catalog", None)
    return ENTITY_MODELS[entity_type].model_validate(payload)


def _entity_to_row(catalog: str, entity: Entity) -> Dict[str, Any]:
    payload = entity.model_dump(mode="json", by_alias=True, exclude={"created", "modified", "data_modified"})
    # Datetimes stay native so the DateTime columns receive datetime objects.
    payload["created"] = entity.created
    payload["modified"] = entity.modified
    if hasattr(entity, "data_modified"):
        payload["data_modified"] = entity.data_modified
    payload["catalog"] = catalog
    return payload


class EntityStore:
    def __init__(self, scope: ConnectionScope):
        self._scope = scope

    def query(
        self,
        catalog: str,
        entity_type,
        expression: Optional[Expression] = None,
        *,
        sort: Optional[Sequence[SortSpec]] = None,
        take: Optional[int] = None,
    ) -> List[Entity]:
        entity_type = _entity_type(entity_type)
        table = ENTITY_TABLES[entity_type]
        stmt = select(table).where(table.c.catalog == catalog, compile_filter(table, expression))
        for field, direction in sort or [("id", "asc")]:
            column = table.c[FIELD_ALIASES.get(field, field)]
            stmt = stmt.order_by(column.desc() if direction == "desc" else column.asc())
        if take:
            stmt = stmt.limit(take)

        with self._scope() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_entity(entity_type, row) for row in rows]

    def create(self, catalog: str, entities: Sequence[Entity]) -> List[Entity]:
        created: List[Entity] = []
        with self._scope() as conn:
            next_ids: Dict[EntityType, int] = {}
            for entity in entities:
                entity_type = entity.entity_type
                table = ENTITY_TABLES[entity_type]
                if entity_type not in next_ids:
                    current = conn.execute(
                        select(func.max(table.c.id)).where(table.c.catalog == catalog)
                    ).scalar()
                    next_ids[entity_type] = (current or 0) + 1
                new_entity = entity.model_copy(update={"id": next_ids[entity_type]})
                next_ids[entity_type] += 1
                conn.execute(insert(table).values(**_entity_to_row(catalog, new_entity)))
                created.append(new_entity)
        logger.debug("Created %d entities in catalog '%s'", len(created), catalog)
        return created

    def update(self, catalog: str, entities: Sequence[Entity]) -> List[Entity]:
        with self._scope() as conn:
            for entity in entities:
                table = ENTITY_TABLES[entity.entity_type]
                values = _entity_to_row(catalog, entity)
                values.pop("catalog")
                values.pop("id")
                conn.execute(
                    update(table)
                    .where(table.c.catalog == catalog, table.c.id == entity.id)
                    .values(**values)
                )
        return list(entities)

    def delete(self, catalog: str, entity_type, ids: Sequence[int]) -> int:
        table = ENTITY_TABLES[_entity_type(entity_type)]
        with self._scope() as conn:
            result = conn.execute(
                delete(table).where(table.c.catalog == catalog, table.c.id.in_(list(ids)))
            )
        return result.rowcount


def _fact_to_row(catalog: str, individual: Individual, position: int, fact) -> Dict[str, Any]:
    row = {
        "catalog": catalog,
        "data_set": individual.data_set,
        "individual": individual.id,
        "position": position,
        "variable": fact.variable,
        "type": fact.type.value,
        "attribute": None,
        "value": None,
        "text_value": None,
    }
    if isinstance(fact, CategoricalFact):
        row["attribute"] = fact.attribute
    elif isinstance(fact, NumericalFact):
        row["value"] = fact.value
    else:
        row["text_value"] = fact.value
    return row


def _row_to_fact(row):
    fact_type = VariableType(row.type)
    if fact_type == VariableType.CATEGORICAL:
        return CategoricalFact(variable=row.variable, attribute=row.attribute)
    if fact_type == VariableType.NUMERICAL:
        return NumericalFact(variable=row.variable, value=row.value)
    return TextFact(variable=row.variable, value=row.text_value)


def _fact_filter_clauses(filters: Dict[str, Iterable[int]]):
    clauses = []
    for field, ids in filters.items():
        if field not in FACT_FILTER_FIELDS:
            raise InvalidFilterError(f"Unknown fact filter: {field}")
        clauses.append(facts.c[field].in_(list(ids)))
    return clauses


class FactStore:
    def __init__(self, scope: ConnectionScope):
        self._scope = scope

    def create(self, catalog: str, individuals: Sequence[Individual]) -> int:
        """Insert the facts of ``individuals``; returns the number of individuals written."""
        rows = [
            _fact_to_row(catalog, individual, position, fact)
            for individual in individuals
            for position, fact in enumerate(individual.facts)
        ]
        if rows:
            with self._scope() as conn:
                conn.execute(insert(facts), rows)
        return len(individuals)

    def query(
        self,
        catalog: str,
        filters: Optional[Dict[str, Iterable[int]]] = None,
        data_set_ids: Optional[Sequence[int]] = None,
    ) -> List[Individual]:
        """
        Load individuals, optionally restricted to some data sets.

        ``filters`` keeps an individual only when, for every filtered field
        (``variable``/``attribute``), at least one of its facts matches.
        """
        stmt = select(facts).where(facts.c.catalog == catalog)
        if data_set_ids is not None:
            stmt = stmt.where(facts.c.data_set.in_(list(data_set_ids)))
        stmt = stmt.order_by(facts.c.data_set, facts.c.individual, facts.c.position)

        with self._scope() as conn:
            rows = conn.execute(stmt).fetchall()

        grouped: Dict[tuple, List[Any]] = {}
        for row in rows:
            grouped.setdefault((row.data_set, row.individual), []).append(row)

        active_filters = {k: set(v) for k, v in (filters or {}).items() if v}
        for field in active_filters:
            if field not in FACT_FILTER_FIELDS:
                raise InvalidFilterError(f"Unknown fact filter: {field}")

        individuals = []
        for (data_set, individual_id), fact_rows in grouped.items():
            if not all(
                any(getattr(r, field) in ids for r in fact_rows)
                for field, ids in active_filters.items()
            ):
                continue
            individuals.append(
                Individual(
                    id=individual_id,
                    data_set=data_set,
                    facts=[_row_to_fact(r) for r in fact_rows],
                )
            )
        return individuals

    def delete(self, catalog: str, filters: Dict[str, Iterable[int]]) -> int:
        stmt = delete(facts).where(facts.c.catalog == catalog, *_fact_filter_clauses(filters))
        with self._scope() as conn:
            result = conn.execute(stmt)
        return result.rowcount


class PublishStore:
    def __init__(self, scope: ConnectionScope):
        self._scope = scope

    def publish_entities(self, catalog: str, target: str, entity_types: Iterable) -> int:
        """Replace the target catalog's entities of ``entity_types`` with copies from ``catalog``."""
        copied = 0
        with self._scope() as conn:
            for entity_type in entity_types:
                table = ENTITY_TABLES[_entity_type(entity_type)]
                columns = [c for c in table.c if c.name != "catalog"]
                conn.execute(delete(table).where(table.c.catalog == target))
                source = select(literal(target).label("catalog"), *columns).where(table.c.catalog == catalog)
                result = conn.execute(
                    insert(table).from_select(["catalog"] + [c.name for c in columns], source)
                )
                copied += result.rowcount or 0
        return copied

    def publish_facts(self, catalog: str, target: str, data_set_ids: Sequence[int]) -> int:
        """Replace the target catalog's facts for ``data_set_ids`` with copies from ``catalog``."""
        if not data_set_ids:
            return 0
        columns = [c for c in facts.c if c.name not in ("catalog", "fact_id")]
        with self._scope() as conn:
            conn.execute(
                delete(facts).where(facts.c.catalog == target, facts.c.data_set.in_(list(data_set_ids)))
            )
            source = select(literal(target).label("catalog"), *columns).where(
                facts.c.catalog == catalog, facts.c.data_set.in_(list(data_set_ids))
            )
            result = conn.execute(
                insert(facts).from_select(["catalog"] + [c.name for c in columns], source)
            )
        return result.rowcount or 0

    def record(self, catalog: str, target: str, kind: str, created: datetime) -> None:
        with self._scope() as conn:
            conn.execute(
                insert(publish_history).values(catalog=catalog, target=target, kind=kind, created=created)
            )

    def last_publish(self, catalog: str, kind: str) -> Optional[datetime]:
        stmt = (
            select(publish_history.c.created)
            .where(publish_history.c.catalog == catalog, publish_history.c.kind == kind)
            .order_by(publish_history.c.created.desc())
            .limit(1)
        )
        with self._scope() as conn:
            return conn.execute(stmt).scalar()


class _Stores:
    def _bind_stores(self, scope: ConnectionScope) -> None:
        self.entities = EntityStore(scope)
        self.data = FactStore(scope)
        self.publish = PublishStore(scope)


class _TransactionOutcome:
    """Records the first commit/rollback signal; later signals are ignored."""

    def __init__(self):
        self.ended = False
        self.committed = False
        self.value = None
        self.error: Optional[BaseException] = None

    def commit(self, value=None) -> None:
        if self.ended:
            return
        self.ended = True
        self.committed = True
        self.value = value

    def rollback(self, error=None) -> None:
        if self.ended:
            return
        self.ended = True
        if not isinstance(error, BaseException):
            error = RuntimeError(str(error) if error is not None else "Transaction rolled back")
        self.error = error


class TransactionStorage(_Stores):
    """Storage view bound to one open transaction connection."""

    def __init__(self, connection: Connection, deadline: Optional[float] = None, timeout_seconds: Optional[float] = None):
        self.connection = connection
        self._deadline = deadline
        self._timeout_seconds = timeout_seconds
        self._bind_stores(self._scope)

    def check_deadline(self) -> None:
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise TransactionTimeoutError(self._timeout_seconds)

    @contextmanager
    def _scope(self):
        self.check_deadline()
        yield self.connection

    def transact(self, fn, timeout_seconds: Optional[float] = None):
        """Run ``fn`` inside the already open transaction."""
        outcome = _TransactionOutcome()
        fn(self, outcome.commit, outcome.rollback)
        if outcome.error is not None:
            raise outcome.error
        if not outcome.committed:
            raise RuntimeError("Transaction callback finished without committing or rolling back")
        return outcome.value


class Storage(_Stores):
    def __init__(self, engine: Engine):
        self.engine = engine
        self._bind_stores(engine.begin)

    def transact(self, fn, timeout_seconds: Optional[float] = None):
        """
        Run ``fn(trx, commit, rollback)`` in a single database transaction.

        ``commit(value)`` commits and makes ``transact`` return ``value``;
        ``rollback(error)`` rolls back and makes ``transact`` raise ``error``.
        Exceptions raised by ``fn`` also roll back and propagate unchanged.
        """
        deadline = time.monotonic() + timeout_seconds if timeout_seconds else None
        outcome = _TransactionOutcome()

        with self.engine.connect() as conn:
            trx = conn.begin()
            handle = TransactionStorage(conn, deadline, timeout_seconds)
            try:
                fn(handle, outcome.commit, outcome.rollback)
                if outcome.committed:
                    handle.check_deadline()
            except Exception as exc:
                trx.rollback()
                logger.error("Transaction rolled back: %s", exc)
                raise

            if outcome.committed:
                trx.commit()
                return outcome.value

            trx.rollback()
            if outcome.error is None:
                raise RuntimeError("Transaction callback finished without committing or rolling back")
            logger.error("Transaction rolled back: %s", outcome.error)
            raise outcome.error
