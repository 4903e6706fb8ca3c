from datetime import datetime

from datacatalog.domain.entities.models import CategoricalFact, EntityType, Individual
from datacatalog.domain.entities.repository import EntityRepository
from datacatalog.domain.publish.publish import publish
from datacatalog.utils.clock import FixedClock
from tests.conftest import CATALOG, TEST_DATA_MODIFIED

TARGET = "published"
PUBLISHED_AT = datetime(2017, 1, 1)


def _store_data(storage, seeded, attribute):
    storage.data.create(CATALOG, [
        Individual(id=1, data_set=seeded["data_set"].id, facts=[
            CategoricalFact(variable=seeded["location"].id, attribute=seeded[attribute].id),
        ]),
    ])


def _mark_modified(repository, seeded):
    data_set, = repository.query_by_id(EntityType.DATA_SET, seeded["data_set"].id)
    repository.update([data_set.model_copy(update={"data_modified": TEST_DATA_MODIFIED})])


def test_publish_copies_entities_and_changed_data(storage, repository, clock, seeded):
    _store_data(storage, seeded, "MA")
    _mark_modified(repository, seeded)

    assert publish(storage, CATALOG, TARGET, FixedClock(PUBLISHED_AT)) is True

    target = EntityRepository(storage, TARGET, clock)
    for entity_type in EntityType:
        assert target.query_all(entity_type) == repository.query_all(entity_type)
    assert storage.data.query(TARGET) == storage.data.query(CATALOG)


def test_publish_skips_data_sets_unchanged_since_last_publish(storage, repository, seeded):
    _store_data(storage, seeded, "MA")
    _mark_modified(repository, seeded)
    publish(storage, CATALOG, TARGET, FixedClock(PUBLISHED_AT))

    storage.data.delete(CATALOG, {"data_set": [seeded["data_set"].id]})
    _store_data(storage, seeded, "NY")
    publish(storage, CATALOG, TARGET, FixedClock(datetime(2017, 2, 1)))

    published, = storage.data.query(TARGET)
    assert published.facts[0].attribute == seeded["MA"].id


def test_publish_replaces_entities_in_target(storage, repository, clock, seeded):
    publish(storage, CATALOG, TARGET, FixedClock(PUBLISHED_AT))
    repository.delete(EntityType.ATTRIBUTE, seeded["NY"].id)

    publish(storage, CATALOG, TARGET, FixedClock(datetime(2017, 2, 1)))

    target = EntityRepository(storage, TARGET, clock)
    assert seeded["NY"].id not in [a.id for a in target.query_all(EntityType.ATTRIBUTE)]


def test_publish_records_history(storage, seeded):
    publish(storage, CATALOG, TARGET, FixedClock(PUBLISHED_AT))

    assert storage.publish.last_publish(CATALOG, "full") == PUBLISHED_AT
