"""
Publishing a catalog to another catalog partition.

A publish copies every entity to the target catalog and the facts of each
data set whose data changed since the last full publish, then records the
publish. Everything happens in one transaction.
"""
import logging
from datetime import datetime

from datacatalog.domain.entities import query as q
from datacatalog.domain.entities.models import EntityType
from datacatalog.domain.entities.repository import EntityRepository
from datacatalog.utils.clock import SystemClock

logger = logging.getLogger(__name__)

FULL_PUBLISH = "full"
EPOCH = datetime(1970, 1, 1)


def publish(storage, catalog: str, target: str, clock=None) -> bool:
    clock = clock or SystemClock()

    def run(trx, commit, rollback):
        repository = EntityRepository(trx, catalog, clock)
        last_publish = trx.publish.last_publish(catalog, FULL_PUBLISH) or EPOCH

        changed = repository.query(EntityType.DATA_SET, q.gt("data_modified", last_publish))
        changed_ids = [d.id for d in changed]

        entity_count = trx.publish.publish_entities(catalog, target, list(EntityType))
        fact_count = trx.publish.publish_facts(catalog, target, changed_ids)
        trx.publish.record(catalog, target, FULL_PUBLISH, clock.now())

        logger.info(
            "Published catalog '%s' to '%s': %d entities, %d facts from %d changed data sets",
            catalog,
            target,
            entity_count,
            fact_count,
            len(changed_ids),
        )
        commit(True)

    return storage.transact(run)
