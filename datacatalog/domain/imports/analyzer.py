"""
Column analysis for files that have no mapping yet.

Reads a raw row stream, collects the distinct values of each column and
proposes catalog matches: a variable for each column header and, for
categorical variables, an attribute for each value. Headers and values are
matched by key first and by name second. Variables scoped to the target data
set win over global variables; variables scoped to other data sets are never
proposed.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from datacatalog.core.config import settings
from datacatalog.domain.entities import query as q
from datacatalog.domain.entities.models import Attribute, EntityType, Variable, VariableType
from .cleaning import is_blank
from .errors import ImportPreconditionError

logger = logging.getLogger(__name__)


class ValueMatch(BaseModel):
    value: str
    match: Optional[bool] = None  # None for non-categorical columns
    attribute: Optional[int] = None


class ColumnMatch(BaseModel):
    key: str
    match: bool
    variable: Optional[int] = None
    values: List[ValueMatch] = Field(default_factory=list)


def _collect_columns(rows: Iterable[Dict[str, Any]], limit: int, column: Optional[str]) -> Dict[str, List[str]]:
    columns: Dict[str, List[str]] = {}
    seen: Dict[str, set] = {}

    def add(key: str, value: Any) -> None:
        values = columns.setdefault(key, [])
        key_seen = seen.setdefault(key, set())
        if is_blank(value) or len(values) >= limit:
            return
        text = str(value)
        if text not in key_seen:
            key_seen.add(text)
            values.append(text)

    for row in rows:
        if column:
            if column not in row:
                raise ImportPreconditionError(f"Data file does not contain column {column}")
            add(column, row[column])
        else:
            for key, value in row.items():
                add(key, value)
    return columns


def _pick(candidates: List[Any], field: str, wanted: str, data_set_id: Optional[int] = None):
    matches = [c for c in candidates if getattr(c, field) == wanted]
    if data_set_id is not None:
        scoped = [c for c in matches if c.scoped_data_set == data_set_id]
        if scoped:
            return scoped[0]
    return matches[0] if matches else None


def locate_variables(repository, data_set_id: int, keys: List[str]) -> Dict[str, Variable]:
    """Match column headers to variables visible from ``data_set_id``."""
    if not keys:
        return {}
    candidates = [
        v
        for v in repository.query(EntityType.VARIABLE, q.or_(q.in_("key", keys), q.in_("name", keys)))
        if v.is_global or v.scoped_data_set == data_set_id
    ]

    located = {}
    for key in keys:
        variable = _pick(candidates, "key", key, data_set_id) or _pick(candidates, "name", key, data_set_id)
        if variable is not None:
            located[key] = variable
    return located


def locate_attributes(repository, variables: Dict[str, Variable], columns: Dict[str, List[str]]) -> Dict[int, Dict[str, Attribute]]:
    """Match categorical column values to attributes; returns ``{variable id: {value: attribute}}``."""
    categorical = {
        key: v for key, v in variables.items() if v.type == VariableType.CATEGORICAL and columns.get(key)
    }
    if not categorical:
        return {}

    values = sorted({value for key in categorical for value in columns[key]})
    candidates = repository.query(
        EntityType.ATTRIBUTE,
        q.and_(
            q.in_("variable", [v.id for v in categorical.values()]),
            q.or_(q.in_("key", values), q.in_("name", values)),
        ),
    )

    located: Dict[int, Dict[str, Attribute]] = {}
    for key, variable in categorical.items():
        own = [a for a in candidates if a.variable == variable.id]
        matches = located.setdefault(variable.id, {})
        for value in columns[key]:
            attribute = _pick(own, "key", value) or _pick(own, "name", value)
            if attribute is not None:
                matches[value] = attribute
    return located


def analyze(
    repository,
    data_set_id: int,
    rows: Iterable[Dict[str, Any]],
    *,
    limit: Optional[int] = None,
    column: Optional[str] = None,
) -> List[ColumnMatch]:
    """
    Analyze a raw row stream against the catalog.

    Args:
        repository: Entity repository of the catalog to match against.
        data_set_id: Data set the file is meant for (controls scoped variables).
        rows: Raw rows, e.g. from ``stream_csv_records``.
        limit: Distinct values collected per column.
        column: Only analyze this column; it must exist in the data.
    """
    limit = settings.analyze_value_limit if limit is None else limit
    columns = _collect_columns(rows, limit, column)

    variables = locate_variables(repository, data_set_id, list(columns))
    attributes = locate_attributes(repository, variables, columns)

    report = []
    for key, values in columns.items():
        variable = variables.get(key)
        if variable is None:
            report.append(ColumnMatch(key=key, match=False, values=[ValueMatch(value=v) for v in values]))
            continue

        if variable.type == VariableType.CATEGORICAL:
            known = attributes.get(variable.id, {})
            value_matches = [
                ValueMatch(value=v, match=True, attribute=known[v].id) if v in known else ValueMatch(value=v, match=False)
                for v in values
            ]
        else:
            value_matches = [ValueMatch(value=v) for v in values]
        report.append(ColumnMatch(key=key, match=True, variable=variable.id, values=value_matches))

    logger.info(
        "Analyzed %d columns for data set %s: %d matched",
        len(report),
        data_set_id,
        sum(1 for c in report if c.match),
    )
    return report
