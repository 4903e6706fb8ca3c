"""
CSV export of imported data.

Each data set is exported as its own CSV document. The header is taken from
the facts of the first individual, which follow the column order of the
original import, so an exported file lines up with the file it came from.
"""
import csv
import io
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from datacatalog.domain.entities.models import EntityType, Individual, VariableType
from datacatalog.domain.formatting.formatters import DataFormatter, format_number
from .query import query_data

logger = logging.getLogger(__name__)


class CsvExporter:
    def __init__(self, repository, formatter: Optional[DataFormatter] = None):
        self.repository = repository
        self.formatter = formatter or DataFormatter()

    def export(
        self,
        filters: Optional[Dict[str, Iterable[int]]] = None,
        data_set_ids: Optional[Sequence[int]] = None,
        *,
        formatted: bool = False,
    ) -> List[Dict[str, Any]]:
        """Return ``[{"data_set": DataSet, "csv": str}, ...]`` for the queried data."""
        results = query_data(self.repository.storage, self.repository.catalog, filters, data_set_ids)
        if not results:
            return []

        facts = [f for result in results for individual in result["data"] for f in individual.facts]
        variable_ids = list(dict.fromkeys(f.variable for f in facts))
        attribute_ids = list(
            dict.fromkeys(
                f.attribute for f in facts if f.type == VariableType.CATEGORICAL and f.attribute is not None
            )
        )

        data_sets = {d.id: d for d in self.repository.query_by_id(EntityType.DATA_SET, [r["data_set"] for r in results])}
        variables = {v.id: v for v in self.repository.query_by_id(EntityType.VARIABLE, variable_ids)}
        attributes = (
            {a.id: a for a in self.repository.query_by_id(EntityType.ATTRIBUTE, attribute_ids)}
            if attribute_ids
            else {}
        )

        exported = []
        for result in results:
            csv_text = self._to_csv(result["data"], variables, attributes, formatted)
            exported.append({"data_set": data_sets.get(result["data_set"]), "csv": csv_text})
            logger.info("Exported %d rows for data set %s", len(result["data"]), result["data_set"])
        return exported

    def _value(self, fact, variables, attributes, formatted: bool) -> Any:
        variable = variables.get(fact.variable)
        if variable is None:
            raise ValueError(f"Bad variable type, or no variable match: {fact.variable}")

        if variable.type == VariableType.CATEGORICAL:
            if fact.attribute is None:
                return ""
            return attributes[fact.attribute].key
        if variable.type == VariableType.NUMERICAL:
            if formatted:
                return self.formatter.format(variable, fact.value)
            return format_number(fact.value)
        return "" if fact.value is None else fact.value

    def _to_csv(self, individuals: List[Individual], variables, attributes, formatted: bool) -> str:
        headers = [variables[f.variable].key if f.variable in variables else str(f.variable) for f in individuals[0].facts]

        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=",", lineterminator="\n")
        writer.writerow(headers)
        for individual in individuals:
            values = {
                variables[f.variable].key if f.variable in variables else str(f.variable): self._value(
                    f, variables, attributes, formatted
                )
                for f in individual.facts
            }
            writer.writerow([values.get(h, "") for h in headers])
        return buffer.getvalue()
