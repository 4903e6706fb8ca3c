import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)


def _to_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def query_data(
    storage,
    catalog: str,
    filters: Optional[Dict[str, Iterable[int]]] = None,
    data_set_ids: Optional[Sequence[int]] = None,
) -> List[Dict[str, Any]]:
    """
    Load imported individuals grouped by data set.

    Returns a list of ``{"data_set": id, "data": [Individual, ...]}`` in data
    set id order; individuals keep their import order.
    """
    ids = _to_list(data_set_ids) if data_set_ids is not None else None
    individuals = storage.data.query(catalog, filters or {}, ids)

    grouped: Dict[int, list] = {}
    for individual in individuals:
        grouped.setdefault(individual.data_set, []).append(individual)

    logger.debug("Queried %d individuals across %d data sets", len(individuals), len(grouped))
    return [{"data_set": data_set, "data": data} for data_set, data in sorted(grouped.items())]
