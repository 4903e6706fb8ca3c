"""
Pytest configuration and fixtures for catalog tests.

Storage-backed tests run against a fresh in-memory SQLite database per test;
the single connection is shared through ``StaticPool`` so every store call
sees the same database.
"""
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from datacatalog.db.models import create_tables
from datacatalog.db.storage import Storage
from datacatalog.domain.entities.models import Attribute, DataSet, Variable, VariableType
from datacatalog.domain.entities.repository import EntityRepository
from datacatalog.utils.clock import FixedClock

CATALOG = "test"
TEST_DATA_MODIFIED = datetime(2016, 6, 24, 12, 30, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def storage(engine):
    return Storage(engine)


@pytest.fixture
def clock():
    return FixedClock(TEST_DATA_MODIFIED)


@pytest.fixture
def repository(storage, clock):
    return EntityRepository(storage, CATALOG, clock)


@pytest.fixture
def seeded(repository):
    """
    A small catalog: one data set, a categorical ``Location`` and ``Year``,
    a numerical ``Percent`` and a text ``Name`` variable.
    """
    data_set, = repository.create([DataSet(name="My Data Set")])
    location, year, percent, name = repository.create(
        [
            Variable(name="Location", type=VariableType.CATEGORICAL),
            Variable(name="Year", type=VariableType.CATEGORICAL),
            Variable(name="Percent", type=VariableType.NUMERICAL),
            Variable(name="Name", type=VariableType.TEXT),
        ]
    )
    ma, ny, y2012, y2013 = repository.create(
        [
            Attribute(name="MA", variable=location.id),
            Attribute(name="NY", variable=location.id),
            Attribute(name="2012", variable=year.id),
            Attribute(name="2013", variable=year.id),
        ]
    )
    return {
        "data_set": data_set,
        "location": location,
        "year": year,
        "percent": percent,
        "name": name,
        "MA": ma,
        "NY": ny,
        "2012": y2012,
        "2013": y2013,
    }
