"""
Tests for catalog validation, merging and persistence.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import read_catalog, write_catalog
from keyhole.catalog import (
    CatalogStore,
    is_pending,
    pending_placeholder,
    validate_catalog,
    write_text_atomically,
)
from keyhole.errors import BackendTimeoutError, CatalogStructureError
from keyhole.structures import ExtractedEntry, ExtractionResult, TranslationKey


def result_of(*items: tuple[str, str, str]) -> ExtractionResult:
    result = ExtractionResult()
    for namespace, key, text in items:
        result.add(ExtractedEntry(key=TranslationKey(namespace, key), text=text, unit="Test"))
    return result


class TestValidateCatalog:
    """Test the two-level nesting rule."""

    def test_valid_catalog(self) -> None:
        data = {"USER_PROFILE": {"SUBMIT_BTN": "Submit"}}
        assert validate_catalog(data, "en") is data

    def test_flat_dotted_key(self) -> None:
        with pytest.raises(CatalogStructureError, match="USER_PROFILE.SUBMIT_BTN"):
            validate_catalog({"USER_PROFILE.SUBMIT_BTN": "Submit"}, "en")

    def test_dotted_key_inside_namespace(self) -> None:
        with pytest.raises(CatalogStructureError):
            validate_catalog({"NS": {"A.B": "x"}}, "en")

    def test_deeper_nesting(self) -> None:
        with pytest.raises(CatalogStructureError):
            validate_catalog({"NS": {"GROUP": {"KEY": "x"}}}, "en")

    def test_namespace_must_be_object(self) -> None:
        with pytest.raises(CatalogStructureError):
            validate_catalog({"NS": "text"}, "en")

    def test_root_must_be_object(self) -> None:
        with pytest.raises(CatalogStructureError):
            validate_catalog(["NS"], "en")


class TestLoad:
    """Test reading catalogs from disk."""

    def test_missing_file_is_empty(self, store: CatalogStore) -> None:
        assert store.load("fr") == {}

    def test_invalid_json(self, store: CatalogStore, catalog_dir: Path) -> None:
        (catalog_dir / "en.json").write_text("{ not json", encoding="utf-8")
        with pytest.raises(CatalogStructureError):
            store.load("en")

    def test_load_all(self, store: CatalogStore, catalog_dir: Path) -> None:
        write_catalog(catalog_dir, "en", {"NS": {"A": "a"}})
        assert store.load_all(["en", "de"]) == {"en": {"NS": {"A": "a"}}, "de": {}}


class TestMerge:
    """Test additive merging and locale synchronisation."""

    def test_new_key_goes_to_base_and_placeholders_elsewhere(self, store: CatalogStore) -> None:
        outcome = store.merge(
            {"en": {}, "de": {}},
            result_of(("USER_PROFILE", "SUBMIT_BTN", "Submit")),
            base_locale="en",
            known_locales=["en", "de"],
        )

        assert outcome.catalogs["en"] == {"USER_PROFILE": {"SUBMIT_BTN": "Submit"}}
        assert outcome.catalogs["de"] == {
            "USER_PROFILE": {"SUBMIT_BTN": "[pending:de] Submit"}
        }
        assert outcome.added == 1
        assert outcome.placeholders == 1
        assert outcome.changed_locales == ["en", "de"]

    def test_inputs_are_not_modified(self, store: CatalogStore) -> None:
        catalogs = {"en": {"NS": {"A": "a"}}}
        store.merge(catalogs, result_of(("NS", "B", "b")), base_locale="en", known_locales=["en"])
        assert catalogs == {"en": {"NS": {"A": "a"}}}

    def test_existing_values_are_never_changed(self, store: CatalogStore) -> None:
        catalogs = {
            "en": {"NS": {"TITLE": "Title"}},
            "de": {"NS": {"TITLE": "Titel"}},
        }
        outcome = store.merge(
            catalogs,
            result_of(("NS", "TITLE", "Different"), ("NS", "NEW", "New")),
            base_locale="en",
            known_locales=["en", "de"],
        )

        assert outcome.catalogs["en"]["NS"] == {"TITLE": "Title", "NEW": "New"}
        assert outcome.catalogs["de"]["NS"]["TITLE"] == "Titel"
        assert outcome.added == 1

    def test_locales_share_the_key_union(self, store: CatalogStore) -> None:
        catalogs = {
            "en": {"NS": {"A": "a"}},
            "de": {"NS": {"B": "b-de"}, "OTHER": {"C": "c-de"}},
        }
        outcome = store.merge(
            catalogs, ExtractionResult(), base_locale="en", known_locales=["en", "de", "fr"]
        )

        shape = {
            locale: {ns: sorted(keys) for ns, keys in catalog.items()}
            for locale, catalog in outcome.catalogs.items()
        }
        assert shape["en"] == shape["de"] == shape["fr"] == {"NS": ["A", "B"], "OTHER": ["C"]}
        assert outcome.catalogs["en"]["NS"]["B"] == "[pending:en] b-de"
        assert outcome.catalogs["de"]["NS"]["A"] == "[pending:de] a"
        assert outcome.catalogs["de"]["NS"]["B"] == "b-de"

    def test_base_gaps_are_reported(
        self, store: CatalogStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        catalogs = {"en": {"NS": {"A": "a"}}, "de": {"NS": {"A": "a-de", "B": "Abbrechen"}}}

        with caplog.at_level("WARNING", logger="keyhole.catalog"):
            outcome = store.merge(
                catalogs, ExtractionResult(), base_locale="en", known_locales=["en", "de"]
            )

        assert outcome.base_gaps == ["NS.B"]
        assert outcome.catalogs["en"]["NS"]["B"] == "[pending:en] Abbrechen"
        assert "NS.B is missing from base locale en" in caplog.text

    def test_complete_base_has_no_gaps(self, store: CatalogStore) -> None:
        catalogs = {"en": {"NS": {"A": "a"}}, "de": {}}
        outcome = store.merge(
            catalogs, ExtractionResult(), base_locale="en", known_locales=["en", "de"]
        )
        assert outcome.base_gaps == []

    def test_translate_fills_other_locales(self, store: CatalogStore) -> None:
        calls = []

        def translate(text: str, source: str, target: str) -> str:
            calls.append((text, source, target))
            return f"{target}:{text}"

        outcome = store.merge(
            {},
            result_of(("NS", "HELLO", "Hello")),
            base_locale="en",
            known_locales=["de"],
            translate=translate,
        )

        assert outcome.catalogs["de"]["NS"]["HELLO"] == "de:Hello"
        assert calls == [("Hello", "en", "de")]
        assert outcome.placeholders == 0
        [entry] = outcome.result
        assert entry.added
        assert entry.translations == {"en": "Hello", "de": "de:Hello"}

    def test_backend_timeout_falls_back_to_placeholder(self, store: CatalogStore) -> None:
        def translate(text: str, source: str, target: str) -> str:
            raise BackendTimeoutError("too slow")

        outcome = store.merge(
            {},
            result_of(("NS", "HELLO", "Hello")),
            base_locale="en",
            known_locales=["en", "de"],
            translate=translate,
        )

        assert outcome.catalogs["de"]["NS"]["HELLO"] == pending_placeholder("Hello", "de")
        assert is_pending(outcome.catalogs["de"]["NS"]["HELLO"])
        assert outcome.placeholders == 1

    def test_repeated_key_is_marked_added_once(self, store: CatalogStore) -> None:
        outcome = store.merge(
            {},
            result_of(("NS", "SAVE_BTN", "Save"), ("NS", "SAVE_BTN", "Save")),
            base_locale="en",
            known_locales=["en"],
        )
        assert [entry.added for entry in outcome.result] == [True, False]

    def test_invalid_input_catalog(self, store: CatalogStore) -> None:
        with pytest.raises(CatalogStructureError):
            store.merge(
                {"en": {"NS.KEY": "x"}}, ExtractionResult(), base_locale="en", known_locales=["en"]
            )


class TestSave:
    """Test persistence."""

    def test_writes_changed_catalogs(self, store: CatalogStore, catalog_dir: Path) -> None:
        written = store.save_all({"en": {"NS": {"A": "ä"}}, "de": {}})

        assert written == ["en"]
        assert not (catalog_dir / "de.json").exists()
        raw = (catalog_dir / "en.json").read_text(encoding="utf-8")
        assert raw == '{\n  "NS": {\n    "A": "ä"\n  }\n}\n'

    def test_unchanged_catalog_is_not_rewritten(self, store: CatalogStore, catalog_dir: Path) -> None:
        data = {"NS": {"A": "a"}}
        path = catalog_dir / "en.json"
        path.write_text(store.dumps(data), encoding="utf-8")
        before = path.stat().st_mtime_ns

        assert store.save_all({"en": data}) == []
        assert path.stat().st_mtime_ns == before

    def test_previous_snapshot_skips_locale(self, store: CatalogStore, catalog_dir: Path) -> None:
        write_catalog(catalog_dir, "en", {"NS": {"A": "a"}})
        original = (catalog_dir / "en.json").read_bytes()

        store.save_all({"en": {"NS": {"A": "a"}}}, previous={"en": {"NS": {"A": "a"}}})
        assert (catalog_dir / "en.json").read_bytes() == original

    def test_no_temporary_files_are_left(self, store: CatalogStore, catalog_dir: Path) -> None:
        store.save_all({"en": {"NS": {"A": "a"}}, "de": {"NS": {"A": "b"}}})
        assert sorted(path.name for path in catalog_dir.iterdir()) == ["de.json", "en.json"]
        assert read_catalog(catalog_dir, "de") == {"NS": {"A": "b"}}


def test_write_text_atomically_preserves_line_endings(tmp_path: Path) -> None:
    target = tmp_path / "file.html"
    write_text_atomically(target, "<p>\r\nText\r\n</p>")
    assert target.read_bytes() == b"<p>\r\nText\r\n</p>"


def test_dumps_keeps_key_order(store: CatalogStore) -> None:
    text = store.dumps({"B": {"Z": "z", "A": "a"}, "A": {}})
    assert list(json.loads(text)) == ["B", "A"]
