"""Exceptions raised by the import pipeline."""
from typing import List, Optional, Tuple


class ImportPreconditionError(Exception):
    """Raised before any row is read when the import cannot start."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class MappingConsistencyError(Exception):
    """Raised when schema attributes do not belong to the variable they are listed under."""

    def __init__(self, offending: List[Tuple[int, int]], message: Optional[str] = None):
        self.offending = offending
        pairs = ", ".join(f"{variable}/{attribute}" for variable, attribute in offending)
        self.message = message or f"Invalid schema. Attributes do not belong to their variable (variable/attribute): {pairs}"
        super().__init__(self.message)


class RowError(Exception):
    """A row that could not be turned into an individual."""

    def __init__(self, row: int, description: str, column: Optional[str] = None, value=None):
        self.row = row
        self.description = description
        self.column = column
        self.value = value
        self.message = f"Error: Row {row}. {description}"
        super().__init__(self.message)
