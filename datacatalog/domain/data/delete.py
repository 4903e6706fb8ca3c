import logging
from typing import Any, Dict

from datacatalog.domain.entities.query import InvalidFilterError
from .query import _to_list

logger = logging.getLogger(__name__)

DELETE_FILTER_FIELDS = ("data_set", "variable", "attribute")


def _is_valid_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def clean_delete_filters(filters: Dict[str, Any]) -> Dict[str, list]:
    """Keep the known filter fields with non-empty values, as lists of ids."""
    cleaned = {}
    for field in DELETE_FILTER_FIELDS:
        ids = _to_list((filters or {}).get(field))
        if ids:
            cleaned[field] = ids

    bad = [
        (field, value)
        for field, ids in cleaned.items()
        for value in ids
        if not _is_valid_id(value)
    ]
    if bad:
        raise InvalidFilterError(f"Invalid filter parameters. Bad id: {filters}")
    return cleaned


def delete_data(storage, catalog: str, filters: Dict[str, Any]) -> int:
    """
    Delete facts matching every supplied filter.

    ``filters`` may contain ``data_set``, ``variable`` and ``attribute`` ids
    (a single id or a list). Empty filters are dropped; if nothing remains the
    call is a no-op.
    """
    cleaned = clean_delete_filters(filters)
    if not cleaned:
        logger.info("No data filters supplied; nothing deleted")
        return 0
    deleted = storage.data.delete(catalog, cleaned)
    logger.info("Deleted %s facts from catalog '%s' matching %s", deleted, catalog, cleaned)
    return deleted
