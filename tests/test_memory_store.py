import unittest
from typing import Optional

from src.domain.exceptions import DatabaseException
from src.domain.models import DocumentRegistry, define_document
from src.domain.plugins import api_id_plugin
from src.infrastructure.memory_store import InMemoryDocumentStore, sort_key
from src.infrastructure.pipeline import parse_pipeline

API_ID = "11111111-1111-4111-8111-111111111111"


def _define_city():
    return define_document(
        "City",
        api_id_plugin,
        fields={"name": (Optional[str], None), "population": (Optional[int], None)},
        collection="cities",
        registry=DocumentRegistry(),
    )


class TestInMemoryDocumentStore(unittest.IsolatedAsyncioTestCase):
    async def test_save_assigns_key_and_marks_persisted(self) -> None:
        City = _define_city()
        store = InMemoryDocumentStore()
        city = City(name="Porto")

        saved = await store.save(city)

        self.assertIs(saved, city)
        self.assertEqual(len(city.id), 24)
        self.assertFalse(city.is_new)

    async def test_find_returns_fresh_instances(self) -> None:
        City = _define_city()
        store = InMemoryDocumentStore()
        city = await store.save(City(api_id=API_ID, name="Porto"))

        found = await store.find_one(City, {"api_id": API_ID})
        by_id = await store.find_by_id(City, city.id)

        self.assertEqual(found.name, "Porto")
        self.assertIsNot(found, city)
        self.assertEqual(by_id.api_id, API_ID)
        self.assertIsNone(await store.find_one(City, {"name": "Lisbon"}))
        self.assertIsNone(await store.find_by_id(City, "missing"))

    async def test_duplicate_api_id_is_rejected(self) -> None:
        City = _define_city()
        store = InMemoryDocumentStore()
        await store.save(City(api_id=API_ID, name="Porto"))

        with self.assertRaises(DatabaseException):
            await store.save(City(api_id=API_ID, name="Lisbon"))

    async def test_aggregate_match_sort_skip_limit(self) -> None:
        City = _define_city()
        store = InMemoryDocumentStore()
        for name, population in (("Porto", 230), ("Lisbon", 540), ("Braga", 190), ("Faro", 60)):
            await store.save(City(name=name, population=population))

        results = await store.aggregate(
            City,
            [{"$sort": {"population": 1}}, {"$skip": 1}, {"$limit": 2}],
        )
        matched = await store.aggregate(City, [{"$match": {"name": "Faro"}}])

        self.assertEqual([body["name"] for body in results], ["Braga", "Porto"])
        self.assertEqual([body["population"] for body in matched], [60])


class TestSortKey(unittest.TestCase):
    def test_mixed_types_follow_jsonb_ordering(self) -> None:
        bodies = [
            {"v": {"a": 1}},
            {},
            {"v": True},
            {"v": 3},
            {"v": "b"},
            {"v": [1]},
            {"v": None},
            {"v": "a"},
            {"v": 1.5},
        ]

        ordered = sorted(bodies, key=lambda body: sort_key(body, "v"))

        self.assertEqual(
            [body.get("v", "missing") for body in ordered],
            [None, "a", "b", 1.5, 3, True, [1], {"a": 1}, "missing"],
        )

    def test_descending_puts_missing_fields_first(self) -> None:
        ordered = sorted([{"v": 1}, {}, {"v": "x"}], key=lambda body: sort_key(body, "v"), reverse=True)

        self.assertEqual([body.get("v", "missing") for body in ordered], ["missing", 1, "x"])


class TestParsePipeline(unittest.TestCase):
    def test_accepts_ordered_stages(self) -> None:
        stages = parse_pipeline([{"$match": {"a": 1}}, {"$match": {"b": 2}}, {"$sort": {"a": -1}}, {"$limit": 5}])

        self.assertEqual([operator for operator, _ in stages], ["$match", "$match", "$sort", "$limit"])

    def test_rejects_unknown_and_out_of_order_stages(self) -> None:
        for pipeline in (
            [{"$group": {}}],
            [{"$limit": 1}, {"$match": {}}],
            [{"$sort": {"a": 1}}, {"$sort": {"b": 1}}],
            [{"$sort": {"a": 2}}],
            [{"$limit": -1}],
            [{"$match": {}, "$limit": 1}],
        ):
            with self.assertRaises(ValueError):
                parse_pipeline(pipeline)
