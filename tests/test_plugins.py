import unittest
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import patch

from src.application.lifecycle import save_document
from src.domain.exceptions import ConfigurationError
from src.domain.models import DocumentRegistry, define_document
from src.domain.plugins import (
    api_id_plugin,
    parse_plugin,
    timestamps_plugin,
    transient_property_plugin,
)
from src.infrastructure.memory_store import InMemoryDocumentStore


def _define_note(editable_properties=("a", "b"), registry=None):
    return define_document(
        "Note",
        api_id_plugin,
        parse_plugin,
        timestamps_plugin,
        transient_property_plugin("viewer"),
        api_resource="/notes",
        editable_properties=editable_properties,
        fields={
            "a": (Optional[int], None),
            "b": (Optional[int], None),
            "secret": (Optional[str], None),
        },
        registry=registry or DocumentRegistry(),
    )


class TestParsePlugin(unittest.TestCase):
    def test_parse_keeps_only_editable_properties(self) -> None:
        Note = _define_note()

        self.assertEqual(Note.parse({"a": 1, "b": 2, "secret": "x"}), {"a": 1, "b": 2})

    def test_parse_skips_editable_properties_missing_from_payload(self) -> None:
        Note = _define_note()

        self.assertEqual(Note.parse({"b": 2}), {"b": 2})

    def test_parse_from_assigns_projection(self) -> None:
        Note = _define_note()
        note = Note(secret="kept")

        result = note.parse_from({"a": 1, "secret": "overwritten", "api_id": "forged"})

        self.assertIs(result, note)
        self.assertEqual(note.a, 1)
        self.assertEqual(note.secret, "kept")
        self.assertIsNone(note.api_id)

    def test_non_list_configuration_is_rejected(self) -> None:
        Note = _define_note(editable_properties="a")

        with self.assertRaises(ConfigurationError):
            Note.parse({"a": 1})

    def test_non_string_entries_are_rejected(self) -> None:
        Note = _define_note(editable_properties=["a", 3])

        with self.assertRaises(ConfigurationError):
            Note.parse({"a": 1})


class TestTimestampsPlugin(unittest.IsolatedAsyncioTestCase):
    async def test_first_save_sets_both_timestamps_to_the_same_value(self) -> None:
        Note = _define_note()
        store = InMemoryDocumentStore()
        first = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        with patch("src.domain.plugins.utcnow", return_value=first):
            note = await save_document(Note(a=1), store)

        self.assertEqual(note.created_at, first)
        self.assertEqual(note.updated_at, first)

    async def test_second_save_advances_updated_at_only(self) -> None:
        Note = _define_note()
        store = InMemoryDocumentStore()
        first = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        second = datetime(2024, 1, 3, 3, 4, 5, tzinfo=timezone.utc)

        with patch("src.domain.plugins.utcnow", return_value=first):
            note = await save_document(Note(a=1), store)
        with patch("src.domain.plugins.utcnow", return_value=second):
            note.a = 2
            await save_document(note, store)

        self.assertEqual(note.created_at, first)
        self.assertEqual(note.updated_at, second)

        reloaded = await store.find_by_id(Note, note.id)
        self.assertEqual(reloaded.created_at, first)
        self.assertEqual(reloaded.updated_at, second)


class TestTransientPropertyPlugin(unittest.IsolatedAsyncioTestCase):
    async def test_transient_value_is_not_persisted(self) -> None:
        Note = _define_note()
        store = InMemoryDocumentStore()
        note = Note(a=1)

        self.assertIsNone(note.viewer)
        note.viewer = "alice"
        self.assertEqual(note.viewer, "alice")

        await save_document(note, store)
        self.assertEqual(note.viewer, "alice")
        self.assertNotIn("viewer", note.model_dump())

        reloaded = await store.find_by_id(Note, note.id)
        self.assertIsNone(reloaded.viewer)

    def test_custom_hidden_property(self) -> None:
        Note = define_document(
            "Note",
            transient_property_plugin("viewer", hidden_property="_request_viewer"),
            registry=DocumentRegistry(),
        )
        note = Note()

        note.viewer = "bob"

        self.assertEqual(note.get_hidden("_request_viewer"), "bob")
