"""Change report for one extraction run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .structures import ExtractionResult


@dataclass(frozen=True)
class ReportRow:
    key: str
    base_value: str
    translations: Dict[str, str] = field(default_factory=dict)


def build_report(result: ExtractionResult, base_locale: str) -> List[ReportRow]:
    """One row per key added by the run, in the order the keys were produced.

    Reused keys produce no row, so the report grows with the work done rather
    than with the size of the catalog.
    """

    rows: List[ReportRow] = []
    for entry in result:
        if not entry.added:
            continue
        rows.append(
            ReportRow(
                key=entry.key.qualified,
                base_value=entry.text,
                translations={
                    locale: value
                    for locale, value in entry.translations.items()
                    if locale != base_locale
                },
            )
        )
    return rows


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def render_table(
    rows: Sequence[ReportRow],
    base_locale: str,
    locales: Sequence[str],
) -> str:
    """Render rows as a Markdown table."""

    others = [locale for locale in locales if locale != base_locale]
    header = ["Key", base_locale, *others]
    lines = [
        "| " + " | ".join(header) + " |",
        "|" + "|".join(" --- " for _ in header) + "|",
    ]
    for row in rows:
        cells = [row.key, row.base_value] + [row.translations.get(locale, "") for locale in others]
        lines.append("| " + " | ".join(_cell(cell) for cell in cells) + " |")
    return "\n".join(lines)
