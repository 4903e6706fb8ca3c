"""
Row-to-individual transformation.

An ``IndividualTransformer`` consumes raw rows (plain dicts, one per source
record, in file order) and produces one ``Individual`` per row. Rows are
pulled lazily, so the transformer never holds more than the row it is
working on.

Per-row failures are reported as ``RowResult`` values by ``results``; calling
the transformer directly applies the stop-on-first-error policy used by the
import orchestrator and raises the first ``RowError``.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional

from datacatalog.domain.entities.models import (
    Attribute,
    CategoricalFact,
    ColumnMapping,
    Individual,
    Mapping,
    NumericalFact,
    TextFact,
    VariableType,
)
from .cleaning import clean_categorical, clean_numerical, clean_text, is_blank, is_valid_number
from .errors import RowError

logger = logging.getLogger(__name__)


@dataclass
class RowResult:
    row: int
    individual: Optional[Individual] = None
    error: Optional[RowError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _copy_mapping(mapping: Mapping) -> Mapping:
    # Attribute tables are copied so that attributes created during one import
    # never leak into the caller's mapping.
    return {
        key: ColumnMapping(
            variable=column.variable,
            attributes=dict(column.attributes) if column.attributes is not None else None,
        )
        for key, column in mapping.items()
    }


class IndividualTransformer:
    def __init__(
        self,
        data_set_id: int,
        mapping: Mapping,
        *,
        repository=None,
        create_missing_attributes: bool = False,
        reject_unmapped_columns: bool = False,
    ):
        if create_missing_attributes and repository is None:
            raise ValueError("An entity repository is required to create missing attributes")

        self.data_set_id = data_set_id
        self.mapping = _copy_mapping(mapping)
        self.repository = repository
        self.create_missing_attributes = create_missing_attributes
        self.reject_unmapped_columns = reject_unmapped_columns
        self.row_count = 0
        self.created_attributes: List[Attribute] = []

    def __call__(self, rows: Iterable[Dict[str, Any]]) -> Iterator[Individual]:
        for result in self.results(rows):
            if result.error is not None:
                raise result.error
            yield result.individual

    def results(self, rows: Iterable[Dict[str, Any]]) -> Iterator[RowResult]:
        for row in rows:
            yield self.transform_row(row)

    def transform_row(self, row: Dict[str, Any]) -> RowResult:
        self.row_count += 1
        row_number = self.row_count

        facts = []
        try:
            for key, value in row.items():
                fact = self._create_fact(row_number, key, value)
                if fact is not None:
                    facts.append(fact)
        except RowError as error:
            logger.warning(error.message)
            return RowResult(row=row_number, error=error)

        individual = Individual(id=row_number, data_set=self.data_set_id, facts=facts)
        return RowResult(row=row_number, individual=individual)

    def _create_fact(self, row_number: int, key: str, value: Any):
        column = self.mapping.get(key)
        if column is None:
            if self.reject_unmapped_columns:
                raise RowError(row_number, f"Column is not mapped: {key}", column=key, value=value)
            return None

        variable = column.variable
        if variable is None:
            raise RowError(row_number, f"Invalid mapping for column: {key}", column=key, value=value)

        if variable.type == VariableType.CATEGORICAL:
            return CategoricalFact(
                variable=variable.id,
                attribute=self._attribute_id(row_number, column, value),
            )

        if variable.type == VariableType.NUMERICAL:
            if is_blank(value):
                return NumericalFact(variable=variable.id, value=None)
            number = clean_numerical(value)
            if not is_valid_number(number):
                raise RowError(
                    row_number,
                    f"Non-numerical value for numerical variable: {variable.key}: {value}",
                    column=key,
                    value=value,
                )
            return NumericalFact(variable=variable.id, value=number)

        return TextFact(variable=variable.id, value=clean_text(value))

    def _attribute_id(self, row_number: int, column: ColumnMapping, value: Any) -> Optional[int]:
        attribute_key = clean_categorical(value)
        if attribute_key is None:
            return None

        if column.attributes is not None and attribute_key in column.attributes:
            return column.attributes[attribute_key].id

        if not self.create_missing_attributes:
            raise RowError(
                row_number,
                f"Invalid mapping for attribute: {column.variable.key}: {value}",
                column=column.variable.key,
                value=value,
            )

        attribute = self._create_attribute(column, attribute_key)
        return attribute.id

    def _create_attribute(self, column: ColumnMapping, attribute_key: str) -> Attribute:
        created = self.repository.create(
            [Attribute(name=attribute_key, key=attribute_key, variable=column.variable.id)]
        )
        attribute = created[0]
        # Remember the new attribute so later rows with the same value reuse it.
        if column.attributes is None:
            column.attributes = {}
        column.attributes[attribute_key] = attribute
        self.created_attributes.append(attribute)
        logger.info(
            "Created attribute %s (%s) for variable %s",
            attribute.id,
            attribute_key,
            column.variable.key,
        )
        return attribute


def create_transformer(
    data_set_id: int,
    mapping: Mapping,
    *,
    repository=None,
    create_missing_attributes: bool = False,
    reject_unmapped_columns: bool = False,
) -> IndividualTransformer:
    return IndividualTransformer(
        data_set_id,
        mapping,
        repository=repository,
        create_missing_attributes=create_missing_attributes,
        reject_unmapped_columns=reject_unmapped_columns,
    )
