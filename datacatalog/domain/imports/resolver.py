"""
Resolution of import mappings against the entity catalog.

Two inputs are accepted:

- a schema: a list of ``{"variable": id, "attributes": [ids]}`` entries. The
  mapping is keyed by variable key and only the listed attributes are known.
- a column mapping: ``{"<source column>": variable_id}``. The mapping is keyed
  by the source column header and every attribute of each variable is known.

Only global variables and variables scoped to the target data set resolve; a
local variable wins over a global one with the same key. Entity lookups are
batched (one query per entity type). Ids that do not resolve are kept as
mapping entries without a variable so that the failure is reported by the row
that uses them.
"""
import logging
from collections import defaultdict
from collections.abc import Mapping as MappingABC
from typing import Any, Dict, List, Optional, Sequence, Union

from datacatalog.domain.entities import query as q
from datacatalog.domain.entities.models import (
    Attribute,
    ColumnMapping,
    DataSet,
    EntityType,
    Mapping,
    SchemaEntry,
    Variable,
    VariableType,
)
from .errors import ImportPreconditionError, MappingConsistencyError

logger = logging.getLogger(__name__)

SchemaInput = Sequence[Union[SchemaEntry, Dict[str, Any]]]
ColumnMappingInput = Dict[str, int]


def is_column_mapping(schema_or_column_mapping: Any) -> bool:
    return isinstance(schema_or_column_mapping, MappingABC)


def _visible_variables(variables: List[Variable], data_set_id: int) -> Dict[int, Variable]:
    # Variables scoped to another data set never resolve.
    return {v.id: v for v in variables if v.is_global or v.scoped_data_set == data_set_id}


def resolve(repository, data_set_id: int, schema_or_column_mapping: Union[SchemaInput, ColumnMappingInput]) -> Mapping:
    """Resolve a schema or a column mapping for an import into ``data_set_id``."""
    if not schema_or_column_mapping:
        raise ImportPreconditionError(
            "Invalid schema or column mapping. A schema or column mapping must be supplied before importing data."
        )

    if is_column_mapping(schema_or_column_mapping):
        mapping = resolve_column_mapping(repository, schema_or_column_mapping, data_set_id)
        mode = "column mapping"
    else:
        mapping = resolve_schema(repository, schema_or_column_mapping, data_set_id)
        mode = "schema"

    unresolved = [key for key, column in mapping.items() if column.variable is None]
    logger.info(
        "Resolved %s for data set %s: %d columns (%d unresolved)",
        mode,
        data_set_id,
        len(mapping),
        len(unresolved),
    )
    return mapping


def resolve_schema(repository, schema: SchemaInput, data_set_id: Optional[int] = None) -> Mapping:
    """
    Resolve schema entries into a mapping keyed by variable key.

    When a global and a local variable share a key, the variable scoped to
    ``data_set_id`` is kept.
    """
    entries = [e if isinstance(e, SchemaEntry) else SchemaEntry.model_validate(e) for e in schema]

    variable_ids = list(dict.fromkeys(e.variable for e in entries))
    attribute_ids = list(dict.fromkeys(a for e in entries for a in e.attributes or []))

    variables = _visible_variables(repository.query_by_id(EntityType.VARIABLE, variable_ids), data_set_id)
    attributes: Dict[int, Attribute] = (
        {a.id: a for a in repository.query_by_id(EntityType.ATTRIBUTE, attribute_ids)}
        if attribute_ids
        else {}
    )

    offending = [
        (entry.variable, attribute_id)
        for entry in entries
        for attribute_id in entry.attributes or []
        if attribute_id in attributes and attributes[attribute_id].variable != entry.variable
    ]
    if offending:
        raise MappingConsistencyError(offending)

    mapping: Mapping = {}
    for entry in entries:
        variable = variables.get(entry.variable)
        entry_attributes = None
        if entry.attributes is not None:
            entry_attributes = {
                attributes[a].key: attributes[a] for a in entry.attributes if a in attributes
            }
        column_key = variable.key if variable else str(entry.variable)
        existing = mapping.get(column_key)
        if (
            existing is not None
            and existing.variable is not None
            and not existing.variable.is_global
            and variable is not None
            and variable.is_global
        ):
            continue
        mapping[column_key] = ColumnMapping(variable=variable, attributes=entry_attributes)
    return mapping


def resolve_column_mapping(repository, column_mapping: ColumnMappingInput, data_set_id: Optional[int] = None) -> Mapping:
    variable_ids = list(dict.fromkeys(v for v in column_mapping.values() if v is not None))

    variables = (
        _visible_variables(repository.query_by_id(EntityType.VARIABLE, variable_ids), data_set_id)
        if variable_ids
        else {}
    )
    attributes: List[Attribute] = (
        repository.query(EntityType.ATTRIBUTE, q.in_("variable", list(variables)))
        if variables
        else []
    )

    attributes_by_variable: Dict[int, Dict[str, Attribute]] = defaultdict(dict)
    for attribute in attributes:
        attributes_by_variable[attribute.variable][attribute.key] = attribute

    mapping: Mapping = {}
    for column, variable_id in column_mapping.items():
        variable = variables.get(variable_id)
        column_attributes = None
        if variable is not None and variable.type == VariableType.CATEGORICAL:
            column_attributes = dict(attributes_by_variable.get(variable.id, {}))
        mapping[column] = ColumnMapping(variable=variable, attributes=column_attributes)
    return mapping


def resolve_data_set_schema(repository, data_set_id: int) -> Mapping:
    """Resolve the schema already persisted on the data set."""
    found = repository.query_by_id(EntityType.DATA_SET, data_set_id)
    if not found:
        raise ImportPreconditionError(f"Data set {data_set_id} does not exist.")
    data_set: DataSet = found[0]
    if not data_set.data_schema:
        raise ImportPreconditionError(
            "Invalid Data Set Schema. The Schema must be configured before importing data."
        )
    return resolve(repository, data_set_id, data_set.data_schema)
