import pytest

from datacatalog.domain.entities import query as q
from datacatalog.domain.entities.models import (
    Attribute,
    CategoricalFact,
    DataSet,
    EntityType,
    Folder,
    Individual,
    Variable,
    VariableType,
)
from datacatalog.domain.entities.repository import EntityRepository, InvalidEntityError
from tests.conftest import CATALOG, TEST_DATA_MODIFIED


def test_create_assigns_ids_per_entity_type(repository):
    folders = repository.create([Folder(name="A"), Folder(name="B")])
    data_set, = repository.create(DataSet(name="Set"))

    assert [f.id for f in folders] == [1, 2]
    assert data_set.id == 1


def test_create_stamps_created_and_modified(repository):
    folder, = repository.create([Folder(name="A")])

    stored, = repository.query_by_id(EntityType.FOLDER, folder.id)
    assert stored.created == TEST_DATA_MODIFIED
    assert stored.modified == TEST_DATA_MODIFIED


def test_create_rejects_entities_with_ids(repository):
    with pytest.raises(InvalidEntityError, match="empty id"):
        repository.create([Folder(id=3, name="A")])


def test_update_requires_ids(repository):
    with pytest.raises(InvalidEntityError):
        repository.update([Folder(name="A")])


def test_update_persists_changes(repository):
    variable, = repository.create([Variable(name="Location", type=VariableType.CATEGORICAL)])

    repository.update([variable.model_copy(update={"name": "Place"})])

    stored, = repository.query_by_id("variable", variable.id)
    assert stored.name == "Place"
    assert stored.key == "Location"


def test_invalid_entity_type(repository):
    with pytest.raises(InvalidEntityError, match="Invalid entity type: thing"):
        repository.query_all("thing")


def test_query_with_filter_sort_and_take(repository):
    repository.create([Folder(name="Alpha"), Folder(name="Beta"), Folder(name="Alphabet")])

    found = repository.query(
        EntityType.FOLDER,
        q.like("name", "Alpha"),
        sort=[q.sort_desc("id")],
        take=1,
    )

    assert [f.name for f in found] == ["Alphabet"]


def test_entities_are_isolated_by_catalog(storage, repository, clock):
    repository.create([Folder(name="A")])
    other = EntityRepository(storage, "other", clock)

    assert other.query_all(EntityType.FOLDER) == []


def test_data_set_schema_round_trips(repository):
    data_set, = repository.create([DataSet(name="Set", schema=[{"variable": 1, "attributes": [2, 3]}])])

    stored, = repository.query_by_id(EntityType.DATA_SET, data_set.id)
    assert stored.data_schema[0].variable == 1
    assert stored.data_schema[0].attributes == [2, 3]


def test_hierarchy(repository):
    root, = repository.create([Folder(name="Root")])
    child, other = repository.create([Folder(name="Child", parent=root.id), Folder(name="Other")])

    assert repository.get_parent(child).id == root.id
    assert repository.get_parent(root) is None
    assert [c.id for c in repository.get_children(root)] == [child.id]


def test_hierarchy_requires_hierarchical_entity(repository):
    data_set, = repository.create([DataSet(name="Set")])

    with pytest.raises(InvalidEntityError, match="not a hierarchical item"):
        repository.get_children(data_set)


def test_delete_folder_cascades(repository):
    root, = repository.create([Folder(name="Root")])
    child, = repository.create([Folder(name="Child", parent=root.id)])
    repository.create([DataSet(name="Inside", folder=child.id), DataSet(name="Outside")])

    repository.delete(EntityType.FOLDER, root.id)

    assert repository.query_all(EntityType.FOLDER) == []
    assert [d.name for d in repository.query_all(EntityType.DATA_SET)] == ["Outside"]


def test_delete_data_set_removes_scoped_variables_and_data(storage, repository, seeded):
    data_set = seeded["data_set"]
    scoped, = repository.create(
        [Variable(name="Local", type=VariableType.CATEGORICAL, scoped_data_set=data_set.id)]
    )
    repository.create([Attribute(name="X", variable=scoped.id)])
    storage.data.create(CATALOG, [
        Individual(id=1, data_set=data_set.id, facts=[CategoricalFact(variable=scoped.id)]),
    ])

    repository.delete(EntityType.DATA_SET, data_set.id)

    assert repository.query_by_id(EntityType.VARIABLE, scoped.id) == []
    assert repository.query(EntityType.ATTRIBUTE, q.eq("variable", scoped.id)) == []
    assert repository.query_by_id(EntityType.VARIABLE, seeded["location"].id)
    assert storage.data.query(CATALOG) == []


def test_delete_attribute_removes_children_and_facts(storage, repository, seeded):
    location = seeded["location"]
    ma = seeded["MA"]
    boston, = repository.create([Attribute(name="Boston", variable=location.id, parent=ma.id)])
    storage.data.create(CATALOG, [
        Individual(id=1, data_set=seeded["data_set"].id, facts=[CategoricalFact(variable=location.id, attribute=ma.id)]),
        Individual(id=2, data_set=seeded["data_set"].id, facts=[CategoricalFact(variable=location.id, attribute=seeded["NY"].id)]),
    ])

    repository.delete(EntityType.ATTRIBUTE, [ma.id])

    assert repository.query_by_id(EntityType.ATTRIBUTE, [ma.id, boston.id]) == []
    assert [i.id for i in storage.data.query(CATALOG)] == [2]


def test_observers_see_lifecycle_events(repository):
    events = []
    unsubscribe = repository.subscribe(
        lambda phase, action, entity_type, payload: events.append((phase, action, entity_type))
    )

    folder, = repository.create([Folder(name="A")])
    repository.delete(EntityType.FOLDER, folder.id)
    unsubscribe()
    repository.create([Folder(name="B")])

    assert events == [
        ("before", "create", EntityType.FOLDER),
        ("after", "create", EntityType.FOLDER),
        ("before", "delete", EntityType.FOLDER),
        ("after", "delete", EntityType.FOLDER),
    ]
