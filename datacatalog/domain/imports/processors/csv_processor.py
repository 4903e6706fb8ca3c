import io
import logging
from os import PathLike
from typing import Any, Dict, Iterator, Optional, Union

import pandas as pd

from datacatalog.core.config import settings

logger = logging.getLogger(__name__)

CsvSource = Union[str, PathLike, bytes, io.IOBase]


def _open_source(source: CsvSource):
    if isinstance(source, bytes):
        return io.BytesIO(source)
    return source


def stream_csv_records(source: CsvSource, chunk_size: Optional[int] = None) -> Iterator[Dict[str, Any]]:
    """
    Stream a CSV file with a header row as one dict per record, in file order.

    The file is parsed ``chunk_size`` rows at a time so large files never sit
    in memory at once. Every cell is kept as a string; empty cells are ``""``
    rather than NaN so callers can tell blank values apart from missing
    columns. Parser errors propagate to the consumer.

    Args:
        source: Path to the file, its raw bytes, or an open file object.
        chunk_size: Rows per pandas chunk (defaults to ``settings.csv_chunk_size``).
    """
    chunk_size = chunk_size or settings.csv_chunk_size
    reader = pd.read_csv(
        _open_source(source),
        chunksize=chunk_size,
        dtype=str,
        keep_default_na=False,
        skipinitialspace=False,
    )

    total = 0
    with reader:
        for chunk_num, chunk in enumerate(reader, start=1):
            records = chunk.to_dict("records")
            total += len(records)
            logger.debug(f"Parsed CSV chunk {chunk_num}: {len(records)} rows")
            for record in records:
                yield record

    logger.info(f"Streamed {total} CSV records")

