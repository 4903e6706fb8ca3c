import pytest

from datacatalog.domain.data.delete import clean_delete_filters, delete_data
from datacatalog.domain.data.query import query_data
from datacatalog.domain.entities.models import CategoricalFact, Individual, NumericalFact
from datacatalog.domain.entities.query import InvalidFilterError
from tests.conftest import CATALOG


@pytest.fixture
def stored(storage):
    storage.data.create(CATALOG, [
        Individual(id=1, data_set=3, facts=[CategoricalFact(variable=1, attribute=10), NumericalFact(variable=2, value=4.0)]),
        Individual(id=1, data_set=1, facts=[CategoricalFact(variable=1, attribute=11)]),
        Individual(id=2, data_set=1, facts=[CategoricalFact(variable=1, attribute=10)]),
    ])


def test_query_groups_by_data_set(storage, stored):
    results = query_data(storage, CATALOG)

    assert [r["data_set"] for r in results] == [1, 3]
    assert [i.id for i in results[0]["data"]] == [1, 2]


def test_query_by_data_set_ids(storage, stored):
    results = query_data(storage, CATALOG, data_set_ids=3)

    assert [r["data_set"] for r in results] == [3]


def test_query_with_filters(storage, stored):
    results = query_data(storage, CATALOG, {"attribute": [11]})

    assert len(results) == 1
    assert results[0]["data"][0].facts == [CategoricalFact(variable=1, attribute=11)]


def test_clean_delete_filters_drops_empty_fields():
    assert clean_delete_filters({"data_set": 4, "variable": [], "attribute": None, "other": [1]}) == {
        "data_set": [4]
    }


@pytest.mark.parametrize("bad", [0, -1, "4", 1.5, True])
def test_clean_delete_filters_rejects_bad_ids(bad):
    with pytest.raises(InvalidFilterError, match="Bad id"):
        clean_delete_filters({"variable": [bad]})


def test_delete_without_filters_is_a_no_op(storage, stored):
    assert delete_data(storage, CATALOG, {}) == 0
    assert len(query_data(storage, CATALOG)) == 2


def test_delete_matching_facts(storage, stored):
    deleted = delete_data(storage, CATALOG, {"data_set": [1]})

    assert deleted == 2
    assert [r["data_set"] for r in query_data(storage, CATALOG)] == [3]
