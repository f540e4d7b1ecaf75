"""Core data structures for the keyhole extractor."""

from __future__ import annotations

import pathlib
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


Catalog = Dict[str, Dict[str, str]]


class CandidateKind(str, Enum):
    CONTENT = "content"
    ATTRIBUTE = "attribute"


@dataclass(frozen=True)
class SourceUnit:
    """A template and its companion logic file, identified by a component."""

    component: str
    template: str
    logic: Optional[str] = None
    template_path: Optional[pathlib.Path] = None
    logic_path: Optional[pathlib.Path] = None


@dataclass(frozen=True)
class Candidate:
    """A located, not-yet-extracted text-bearing region in a template.

    ``start``/``end`` delimit the exact characters that get replaced: the
    trimmed text for content nodes, the whole ``name="value"`` attribute for
    attribute candidates. ``params`` maps placeholder names to the
    interpolated expressions found inside the text, and ``message`` is the
    text as it is stored in the base-locale catalog.
    """

    kind: CandidateKind
    text: str
    start: int
    end: int
    message: str
    element: Optional[str] = None
    attribute: Optional[str] = None
    leading_whitespace: str = ""
    trailing_whitespace: str = ""
    params: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True, order=True)
class TranslationKey:
    """Qualified ``NAMESPACE.KEY`` identifier addressing one catalog entry."""

    namespace: str
    key: str

    @property
    def qualified(self) -> str:
        return f"{self.namespace}.{self.key}"

    def __str__(self) -> str:
        return self.qualified


@dataclass(frozen=True)
class ExtractedEntry:
    """One key produced by a run, with its base text and per-locale values."""

    key: TranslationKey
    text: str
    unit: str
    reused: bool = False
    added: bool = False
    translations: Dict[str, str] = field(default_factory=dict)


@dataclass
class ExtractionResult:
    """Accumulated entries of one run; the only input to merge and reporting."""

    entries: List[ExtractedEntry] = field(default_factory=list)

    def add(self, entry: ExtractedEntry) -> None:
        for existing in self.entries:
            if existing.key == entry.key and existing.text != entry.text:
                raise ValueError(
                    f"Key {entry.key} assigned to two different texts in one run."
                )
        self.entries.append(entry)

    def extend(self, entries: List[ExtractedEntry]) -> None:
        for entry in entries:
            self.add(entry)

    def __iter__(self) -> Iterator[ExtractedEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class UnitOutcome:
    """Result of processing a single SourceUnit."""

    unit: SourceUnit
    namespace: str
    template: str
    logic: Optional[str]
    entries: List[ExtractedEntry] = field(default_factory=list)
    candidates: int = 0
    binding_inserted: bool = False
    skipped: bool = False
    reason: Optional[str] = None

    @property
    def template_changed(self) -> bool:
        return not self.skipped and self.template != self.unit.template

    @property
    def logic_changed(self) -> bool:
        return (
            not self.skipped
            and self.logic is not None
            and self.logic != self.unit.logic
        )


def mark(entry: ExtractedEntry, **changes) -> ExtractedEntry:
    """Return a copy of ``entry`` with ``changes`` applied."""

    return replace(entry, **changes)
