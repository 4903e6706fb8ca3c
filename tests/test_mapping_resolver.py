import pytest

from datacatalog.domain.entities.models import (
    Attribute,
    DataSet,
    SchemaEntry,
    Variable,
    VariableType,
)
from datacatalog.domain.imports.errors import ImportPreconditionError, MappingConsistencyError
from datacatalog.domain.imports.resolver import resolve, resolve_data_set_schema
from tests.utils.stubs import StubEntityRepository


@pytest.fixture
def entities():
    return [
        Variable(id=72, name="Location", type=VariableType.CATEGORICAL),
        Variable(id=98, name="Year", type=VariableType.CATEGORICAL),
        Variable(id=600, name="Percent", type=VariableType.NUMERICAL),
        Variable(id=73, name="Location-Keyed", key="loc", type=VariableType.CATEGORICAL),
        Attribute(id=4, name="2012", variable=98),
        Attribute(id=5, name="2013", variable=98),
        Attribute(id=45, name="MA", variable=72),
        Attribute(id=76, name="NY", variable=72),
        Attribute(id=77, name="MA", key="MA-Keyed", variable=73),
        Attribute(id=78, name="NY", key="NY-Keyed", variable=73),
    ]


def test_schema_mode_indexes_by_variable_and_attribute_keys(entities):
    repository = StubEntityRepository(entities)

    mapping = resolve(repository, 56, [
        {"variable": 72, "attributes": [45, 76]},
        {"variable": 73, "attributes": [77]},
        {"variable": 600},
    ])

    assert list(mapping) == ["Location", "loc", "Percent"]
    assert mapping["Location"].variable.id == 72
    assert {k: a.id for k, a in mapping["Location"].attributes.items()} == {"MA": 45, "NY": 76}
    assert {k: a.id for k, a in mapping["loc"].attributes.items()} == {"MA-Keyed": 77}
    assert mapping["Percent"].attributes is None


def test_schema_mode_fetches_each_entity_type_once(entities):
    repository = StubEntityRepository(entities)

    resolve(repository, 56, [SchemaEntry(variable=72, attributes=[45]), SchemaEntry(variable=98, attributes=[4, 5])])

    assert repository.query_by_id.call_count == 2


def test_schema_mode_aggregates_attribute_ownership_errors(entities):
    repository = StubEntityRepository(entities)

    with pytest.raises(MappingConsistencyError) as excinfo:
        resolve(repository, 56, [
            {"variable": 72, "attributes": [45, 4]},
            {"variable": 98, "attributes": [5, 76]},
        ])

    assert excinfo.value.offending == [(72, 4), (98, 76)]
    assert "72/4" in excinfo.value.message
    assert "98/76" in excinfo.value.message


def test_schema_mode_keeps_unresolved_variables_for_row_handling(entities):
    repository = StubEntityRepository(entities)

    mapping = resolve(repository, 56, [{"variable": 999}])

    assert mapping["999"].variable is None


def test_column_mapping_mode_keys_by_source_column(entities):
    repository = StubEntityRepository(entities)

    mapping = resolve(repository, 56, {"State": 72, "Yr": 98, "Pct": 600})

    assert list(mapping) == ["State", "Yr", "Pct"]
    assert mapping["State"].variable.key == "Location"
    assert set(mapping["State"].attributes) == {"MA", "NY"}
    assert set(mapping["Yr"].attributes) == {"2012", "2013"}
    assert mapping["Pct"].attributes is None


def test_column_mapping_mode_missing_variable_is_deferred(entities):
    repository = StubEntityRepository(entities)

    mapping = resolve(repository, 56, {"State": 72, "Mystery": 12345})

    assert mapping["State"].variable.id == 72
    assert mapping["Mystery"].variable is None


@pytest.mark.parametrize("empty", [None, [], {}])
def test_missing_schema_or_mapping_is_a_precondition_error(entities, empty):
    repository = StubEntityRepository(entities)

    with pytest.raises(ImportPreconditionError):
        resolve(repository, 56, empty)

    repository.query_by_id.assert_not_called()


def test_data_set_schema_is_required(entities):
    repository = StubEntityRepository(entities + [DataSet(id=56, name="No schema")])

    with pytest.raises(ImportPreconditionError, match="Schema must be configured"):
        resolve_data_set_schema(repository, 56)


def test_data_set_schema_resolves_persisted_schema(entities):
    data_set = DataSet(id=56, name="With schema", schema=[{"variable": 72, "attributes": [45, 76]}])
    repository = StubEntityRepository(entities + [data_set])

    mapping = resolve_data_set_schema(repository, 56)

    assert set(mapping["Location"].attributes) == {"MA", "NY"}


def test_resolves_against_stored_catalog(repository, seeded):
    mapping = resolve(repository, seeded["data_set"].id, {"Where": seeded["location"].id})

    assert mapping["Where"].variable == seeded["location"]
    assert mapping["Where"].attributes["MA"] == seeded["MA"]


@pytest.fixture
def scoped_entities(entities):
    return entities + [
        Variable(id=99, name="Year", type=VariableType.CATEGORICAL, scoped_data_set=56),
        Variable(id=100, name="Notes", type=VariableType.TEXT, scoped_data_set=57),
        Attribute(id=6, name="2012", variable=99),
    ]


@pytest.mark.parametrize("order", [[99, 98], [98, 99]])
def test_schema_mode_prefers_local_variable(scoped_entities, order):
    repository = StubEntityRepository(scoped_entities)

    mapping = resolve(repository, 56, [{"variable": variable_id} for variable_id in order])

    assert mapping["Year"].variable.id == 99


def test_schema_mode_uses_global_variable_for_other_data_sets(scoped_entities):
    repository = StubEntityRepository(scoped_entities)

    mapping = resolve(repository, 57, [{"variable": 99}, {"variable": 98, "attributes": [4]}])

    assert mapping["Year"].variable.id == 98
    assert mapping["99"].variable is None


def test_schema_mode_variable_scoped_to_another_data_set_does_not_resolve(scoped_entities):
    repository = StubEntityRepository(scoped_entities)

    mapping = resolve(repository, 56, [{"variable": 100}])

    assert mapping["100"].variable is None


def test_column_mapping_mode_variable_scoped_to_another_data_set_does_not_resolve(scoped_entities):
    repository = StubEntityRepository(scoped_entities)

    mapping = resolve(repository, 56, {"Notes": 100, "Year": 99})

    assert mapping["Notes"].variable is None
    assert mapping["Year"].variable.id == 99
    assert set(mapping["Year"].attributes) == {"2012"}
