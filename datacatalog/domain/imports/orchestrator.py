"""
Transactional data import.

An import replaces every fact of one data set with the rows of a source file:

1. open a storage transaction
2. delete the data set's existing facts
3. resolve the schema / column mapping against the catalog
4. stream the source rows through an ``IndividualTransformer``
5. write individuals in fixed-size batches, tallying the observed schema
6. store the observed schema and the data modified time on the data set
7. commit and return the number of rows written

Any failure rolls the whole transaction back; the caller sees the original
exception and nothing from the import is kept.
"""
import logging
from itertools import islice
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from datacatalog.core.config import settings
from datacatalog.core.logging_config import configure_logging
from datacatalog.domain.entities.models import (
    CategoricalFact,
    DataSet,
    EntityType,
    Individual,
    SchemaEntry,
)
from datacatalog.domain.entities.repository import EntityRepository
from datacatalog.utils.clock import SystemClock
from datacatalog.utils.locks import DataSetLockManager
from .errors import ImportPreconditionError
from .individuals import create_transformer
from .processors.csv_processor import stream_csv_records
from .resolver import resolve

logger = logging.getLogger(__name__)

RowSource = Callable[[Any], Iterable[Dict[str, Any]]]


class SchemaTally:
    """Variables and attribute ids observed in imported individuals, in first-seen order."""

    def __init__(self):
        self._attributes: Dict[int, Optional[List[int]]] = {}

    def observe(self, individual: Individual) -> None:
        for fact in individual.facts:
            if fact.variable not in self._attributes:
                self._attributes[fact.variable] = [] if isinstance(fact, CategoricalFact) else None
            if isinstance(fact, CategoricalFact) and fact.attribute is not None:
                seen = self._attributes[fact.variable]
                if fact.attribute not in seen:
                    seen.append(fact.attribute)

    def observe_batch(self, individuals: Iterable[Individual]) -> None:
        for individual in individuals:
            self.observe(individual)

    def to_schema(self) -> List[SchemaEntry]:
        return [
            SchemaEntry(variable=variable, attributes=list(attributes) if attributes is not None else None)
            for variable, attributes in self._attributes.items()
        ]


def _batched(items: Iterable[Any], size: int) -> Iterator[List[Any]]:
    iterator = iter(items)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


class DataImporter:
    def __init__(
        self,
        storage,
        catalog: Optional[str] = None,
        clock=None,
        row_source: RowSource = stream_csv_records,
        repository: Optional[EntityRepository] = None,
    ):
        self.storage = storage
        self.catalog = catalog or settings.catalog
        self.clock = clock or SystemClock()
        self.row_source = row_source
        self.repository = repository or EntityRepository(storage, self.catalog, self.clock)

    def import_data(
        self,
        data_set_id: int,
        schema_or_column_mapping,
        source_file,
        *,
        batch_size: Optional[int] = None,
        create_missing_attributes: Optional[bool] = None,
        reject_unmapped_columns: Optional[bool] = None,
        timeout_seconds: Optional[float] = None,
    ) -> int:
        """
        Replace the facts of ``data_set_id`` with the rows of ``source_file``.

        Args:
            data_set_id: Target data set.
            schema_or_column_mapping: Schema entries (list) or a
                ``{source column: variable id}`` mapping (dict).
            source_file: Anything the row source accepts (a CSV path by default).
            batch_size: Individuals per fact insert.
            create_missing_attributes: Create attributes for unmatched
                categorical values instead of failing the row.
            reject_unmapped_columns: Fail rows that contain columns absent
                from the mapping instead of ignoring those columns.
            timeout_seconds: Transaction timeout.

        Returns:
            The number of rows written.
        """
        if not schema_or_column_mapping:
            raise ImportPreconditionError(
                "Invalid schema or column mapping. A schema or column mapping must be supplied before importing data."
            )

        if batch_size is None:
            batch_size = settings.import_batch_size
        if batch_size < 1:
            raise ImportPreconditionError(f"Invalid batch size: {batch_size}. The batch size must be at least 1.")

        options = {
            "batch_size": batch_size,
            "create_missing_attributes": (
                settings.import_create_missing_attributes
                if create_missing_attributes is None
                else create_missing_attributes
            ),
            "reject_unmapped_columns": (
                settings.import_reject_unmapped_columns
                if reject_unmapped_columns is None
                else reject_unmapped_columns
            ),
        }
        if timeout_seconds is None:
            timeout_seconds = settings.import_transaction_timeout_seconds

        logger.info(
            "Starting import into data set %s of catalog '%s' (batch size %s)",
            data_set_id,
            self.catalog,
            options["batch_size"],
        )

        with DataSetLockManager.acquire(self.catalog, data_set_id):
            rows_written = self.storage.transact(
                lambda trx, commit, rollback: self._run_import(
                    trx,
                    commit,
                    rollback,
                    data_set_id,
                    schema_or_column_mapping,
                    source_file,
                    **options,
                ),
                timeout_seconds=timeout_seconds,
            )

        logger.info("Import into data set %s committed: %s rows written", data_set_id, rows_written)
        return rows_written

    def _run_import(
        self,
        trx,
        commit,
        rollback,
        data_set_id: int,
        schema_or_column_mapping,
        source_file,
        *,
        batch_size: int,
        create_missing_attributes: bool,
        reject_unmapped_columns: bool,
    ) -> None:
        transaction_ended = False

        def handle_error(error: Exception) -> None:
            nonlocal transaction_ended
            if not transaction_ended:
                transaction_ended = True
                logger.error("Import into data set %s failed, rolling back: %s", data_set_id, error)
                rollback(error)

        batch_counts: List[int] = []
        try:
            repository = self.repository.transact(trx)
            self._load_data_set(repository, data_set_id)

            trx.data.delete(self.catalog, {"data_set": [data_set_id]})

            mapping = resolve(repository, data_set_id, schema_or_column_mapping)
            transformer = create_transformer(
                data_set_id,
                mapping,
                repository=repository,
                create_missing_attributes=create_missing_attributes,
                reject_unmapped_columns=reject_unmapped_columns,
            )
            individuals = transformer(self.row_source(source_file))

            tally = SchemaTally()
            for batch_num, batch in enumerate(_batched(individuals, batch_size), start=1):
                tally.observe_batch(batch)
                batch_counts.append(trx.data.create(self.catalog, batch))
                logger.debug("Wrote batch %d (%d individuals) for data set %s", batch_num, len(batch), data_set_id)

            if transformer.created_attributes:
                logger.info(
                    "Created %d missing attributes while importing data set %s",
                    len(transformer.created_attributes),
                    data_set_id,
                )

            data_set = self._load_data_set(repository, data_set_id)
            repository.update(
                [
                    data_set.model_copy(
                        update={"data_schema": tally.to_schema(), "data_modified": self.clock.now()}
                    )
                ]
            )
        except Exception as exc:
            handle_error(exc)
            return

        if not transaction_ended:
            transaction_ended = True
            commit(sum(batch_counts))

    @staticmethod
    def _load_data_set(repository, data_set_id: int) -> DataSet:
        found = repository.query_by_id(EntityType.DATA_SET, data_set_id)
        if not found:
            raise ImportPreconditionError(f"Data set {data_set_id} does not exist.")
        return found[0]


def import_data(
    data_set_id: int,
    schema_or_column_mapping,
    source_file,
    *,
    storage=None,
    catalog: Optional[str] = None,
    clock=None,
    **options,
) -> int:
    """Import ``source_file`` into ``data_set_id`` using the configured database."""
    configure_logging()
    if storage is None:
        from datacatalog.db.session import get_engine
        from datacatalog.db.storage import Storage

        storage = Storage(get_engine())
    importer = DataImporter(storage, catalog=catalog, clock=clock)
    return importer.import_data(data_set_id, schema_or_column_mapping, source_file, **options)
