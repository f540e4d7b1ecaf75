"""
Tests for the change report.
"""

from __future__ import annotations

from keyhole.reporter import ReportRow, build_report, render_table
from keyhole.structures import ExtractedEntry, ExtractionResult, TranslationKey


def entry(key: str, text: str, *, added: bool, translations: dict[str, str]) -> ExtractedEntry:
    namespace, name = key.split(".")
    return ExtractedEntry(
        key=TranslationKey(namespace, name),
        text=text,
        unit="UserProfileComponent",
        added=added,
        translations=translations,
    )


class TestBuildReport:
    """Test row selection."""

    def test_only_added_keys_produce_rows(self) -> None:
        result = ExtractionResult(
            entries=[
                entry("NS.NEW", "New", added=True, translations={"en": "New", "de": "Neu"}),
                entry("NS.OLD", "Old", added=False, translations={"en": "Old", "de": "Alt"}),
            ]
        )
        assert build_report(result, "en") == [
            ReportRow(key="NS.NEW", base_value="New", translations={"de": "Neu"})
        ]

    def test_empty_result(self) -> None:
        assert build_report(ExtractionResult(), "en") == []


class TestRenderTable:
    """Test Markdown rendering."""

    def test_table_layout(self) -> None:
        rows = [ReportRow(key="NS.A", base_value="A | B", translations={"de": "[pending:de] A | B"})]
        table = render_table(rows, "en", ["en", "de"])

        assert table.splitlines() == [
            "| Key | en | de |",
            "| --- | --- | --- |",
            "| NS.A | A \\| B | [pending:de] A \\| B |",
        ]

    def test_missing_translation_is_blank(self) -> None:
        table = render_table([ReportRow(key="NS.A", base_value="A")], "en", ["en", "fr"])
        assert table.splitlines()[-1] == "| NS.A | A |  |"
