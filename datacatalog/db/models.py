"""
Table definitions for the catalog store.

Every table is partitioned by a ``catalog`` column. Entity tables use the
composite primary key ``(catalog, id)`` so that a published copy of an
entity keeps the id it has in its source catalog.
"""
import logging

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.engine import Engine

from datacatalog.domain.entities.models import EntityType

logger = logging.getLogger(__name__)

metadata = MetaData()


def _entity_columns():
    return [
        Column("catalog", String(255), primary_key=True),
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("name", String(500), nullable=False),
        Column("created", DateTime(timezone=True)),
        Column("modified", DateTime(timezone=True)),
    ]


folders = Table(
    "folders",
    metadata,
    *_entity_columns(),
    Column("parent", Integer),
)

data_sets = Table(
    "data_sets",
    metadata,
    *_entity_columns(),
    Column("folder", Integer),
    Column("schema", JSON),
    Column("data_modified", DateTime(timezone=True)),
)

variables = Table(
    "variables",
    metadata,
    *_entity_columns(),
    Column("key", String(500), nullable=False),
    Column("type", String(32), nullable=False),
    Column("scoped_data_set", Integer),
    Column("format", JSON),
    Index("idx_variables_key", "catalog", "key"),
)

attributes = Table(
    "attributes",
    metadata,
    *_entity_columns(),
    Column("key", String(500), nullable=False),
    Column("variable", Integer, nullable=False),
    Column("parent", Integer),
    Index("idx_attributes_variable", "catalog", "variable"),
)

facts = Table(
    "facts",
    metadata,
    Column("fact_id", Integer, primary_key=True, autoincrement=True),
    Column("catalog", String(255), nullable=False),
    Column("data_set", Integer, nullable=False),
    Column("individual", Integer, nullable=False),
    Column("position", Integer, nullable=False),  # Column order within the individual
    Column("variable", Integer, nullable=False),
    Column("type", String(32), nullable=False),
    Column("attribute", Integer),
    Column("value", Float),
    Column("text_value", Text),
    Index("idx_facts_data_set", "catalog", "data_set", "individual"),
    Index("idx_facts_variable", "catalog", "variable"),
)

publish_history = Table(
    "publish_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("catalog", String(255), nullable=False),
    Column("target", String(255), nullable=False),
    Column("kind", String(32), nullable=False),
    Column("created", DateTime(timezone=True), nullable=False),
)

ENTITY_TABLES = {
    EntityType.FOLDER: folders,
    EntityType.DATA_SET: data_sets,
    EntityType.VARIABLE: variables,
    EntityType.ATTRIBUTE: attributes,
}


def create_tables(engine: Engine) -> None:
    """Create the catalog tables if they don't exist."""
    try:
        metadata.create_all(engine)
        logger.info("Catalog tables created/verified successfully")
    except Exception as e:
        logger.error(f"Error creating catalog tables: {str(e)}")
        raise
