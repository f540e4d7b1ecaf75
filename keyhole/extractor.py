"""High-level orchestration for an extraction run."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .binder import DependencyBinder
from .catalog import CatalogStore, Translate, write_text_atomically
from .errors import (
    BindingError,
    CatalogStructureError,
    ErrorCategory,
    KeyGenerationError,
    RunCancelled,
    ScanError,
)
from .keys import DEFAULT_MAX_LENGTH, DEFAULT_MAX_WORDS, KeyGenerator
from .namespacer import DEFAULT_ROLE_SUFFIXES, derive_namespace
from .policy import ErrorPolicy
from .providers import BoundedTranslator, NullTranslationBackend, TranslationBackend
from .reporter import ReportRow, build_report
from .rewriter import Assignment, ReferenceSyntax, Rewriter
from .scanner import DEFAULT_ATTRIBUTES, Scanner
from .structures import Catalog, ExtractedEntry, ExtractionResult, SourceUnit, UnitOutcome

logger = logging.getLogger(__name__)


@dataclass
class ExtractionSummary:
    """Report returned after a run."""

    total_units: int
    processed_units: int
    skipped_units: List[Tuple[str, str]]
    total_candidates: int
    keys_added: int
    keys_reused: int
    placeholders: int
    base_gaps: List[str]
    base_locale: str
    locales: List[str]
    report: List[ReportRow]
    outcomes: List[UnitOutcome]
    catalogs: Dict[str, Catalog]
    written_catalogs: List[str]
    written_files: List[Path]
    dry_run: bool
    elapsed_seconds: float
    error_messages: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.skipped_units


class ExtractionRunner:
    """Coordinates scanning, key assignment, rewriting, merging and reporting.

    Catalogs are validated before any unit is processed and written once,
    after every unit has been handled; source files are written after the
    catalogs. Nothing is written when the run is cancelled or fails on a
    catalog structure error.
    """

    def __init__(
        self,
        *,
        store: CatalogStore,
        base_locale: str,
        known_locales: Iterable[str],
        attributes: Iterable[str] = DEFAULT_ATTRIBUTES,
        role_suffixes: Sequence[str] = DEFAULT_ROLE_SUFFIXES,
        max_key_words: int = DEFAULT_MAX_WORDS,
        max_key_length: int = DEFAULT_MAX_LENGTH,
        backend: Optional[TranslationBackend] = None,
        backend_timeout: float = 10.0,
        backend_retries: int = 1,
        syntax: Optional[ReferenceSyntax] = None,
        binder: Optional[DependencyBinder] = None,
        max_workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.base_locale = base_locale
        self.locales = [base_locale] + sorted(set(known_locales) - {base_locale})
        self.role_suffixes = tuple(role_suffixes)
        self.max_key_words = max_key_words
        self.max_key_length = max_key_length
        self.backend = backend
        self.backend_timeout = backend_timeout
        self.backend_retries = backend_retries
        self.max_workers = max(1, max_workers)
        self.cancel_event = cancel_event or threading.Event()
        self.dry_run = dry_run

        self.scanner = Scanner(attributes)
        self.rewriter = Rewriter(syntax)
        self.binder = binder or DependencyBinder()
        self.error_policy = ErrorPolicy()

    def cancel(self) -> None:
        self.cancel_event.set()

    def run(self, units: Sequence[SourceUnit]) -> ExtractionSummary:
        start_time = time.time()

        try:
            catalogs = self.store.load_all(self.locales)
        except CatalogStructureError as exc:
            self.error_policy.handle_error(ErrorCategory.CATALOG, str(exc))
            raise
        logger.info(
            "Loaded %d catalogs from %s; processing %d units.",
            len(catalogs),
            self.store.directory,
            len(units),
        )

        outcomes = self._process_all(units, catalogs)
        self._check_cancelled()

        result = ExtractionResult()
        for outcome in outcomes:
            result.extend(outcome.entries)

        try:
            merge = self.store.merge(
                catalogs,
                result,
                base_locale=self.base_locale,
                known_locales=self.locales,
                translate=self._translator(),
            )
        except CatalogStructureError as exc:
            self.error_policy.handle_error(ErrorCategory.CATALOG, str(exc))
            raise
        self._check_cancelled()

        written_catalogs: List[str] = []
        written_files: List[Path] = []
        if not self.dry_run:
            try:
                written_catalogs = self.store.save_all(merge.catalogs, previous=catalogs)
                written_files = self._write_sources(outcomes)
            except OSError as exc:
                self.error_policy.handle_error(
                    ErrorCategory.FILE_IO,
                    f"Could not write output files: {exc}",
                    details=getattr(exc, "filename", None),
                )
                raise

        skipped = [
            (outcome.unit.component, outcome.reason or "skipped")
            for outcome in outcomes
            if outcome.skipped
        ]
        summary = ExtractionSummary(
            total_units=len(units),
            processed_units=len(units) - len(skipped),
            skipped_units=skipped,
            total_candidates=sum(outcome.candidates for outcome in outcomes),
            keys_added=merge.added,
            keys_reused=sum(1 for entry in merge.result if not entry.added),
            placeholders=merge.placeholders,
            base_gaps=list(merge.base_gaps),
            base_locale=self.base_locale,
            locales=list(self.locales),
            report=build_report(merge.result, self.base_locale),
            outcomes=outcomes,
            catalogs=merge.catalogs,
            written_catalogs=written_catalogs,
            written_files=written_files,
            dry_run=self.dry_run,
            elapsed_seconds=time.time() - start_time,
            error_messages=self.error_policy.messages(),
        )
        logger.info(
            "Run finished: %d keys added, %d reused, %d units skipped.",
            summary.keys_added,
            summary.keys_reused,
            len(skipped),
        )
        return summary

    # --- Internal helpers -------------------------------------------------

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise RunCancelled("Run cancelled before catalogs were written.")

    def _translator(self) -> Optional[Translate]:
        if self.backend is None or isinstance(self.backend, NullTranslationBackend):
            return None
        return BoundedTranslator(
            self.backend,
            timeout=self.backend_timeout,
            max_retries=self.backend_retries,
        )

    def _process_all(
        self,
        units: Sequence[SourceUnit],
        catalogs: Mapping[str, Catalog],
    ) -> List[UnitOutcome]:
        results: List[Optional[UnitOutcome]] = [None] * len(units)
        groups: Dict[str, List[Tuple[int, SourceUnit]]] = {}
        for index, unit in enumerate(units):
            try:
                namespace = derive_namespace(unit.component, self.role_suffixes)
            except ValueError as exc:
                self.error_policy.handle_error(
                    ErrorCategory.SCAN, str(exc), unit=unit.component or "<unnamed>"
                )
                results[index] = UnitOutcome(
                    unit=unit,
                    namespace="",
                    template=unit.template,
                    logic=unit.logic,
                    skipped=True,
                    reason=str(exc),
                )
                continue
            groups.setdefault(namespace, []).append((index, unit))

        # Units sharing a namespace run in order inside one task; tasks share nothing.
        if self.max_workers > 1 and len(groups) > 1:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="keyhole-unit"
            ) as executor:
                futures = [
                    executor.submit(self._process_group, namespace, members, catalogs)
                    for namespace, members in groups.items()
                ]
                for future in futures:
                    for index, outcome in future.result():
                        results[index] = outcome
        else:
            for namespace, members in groups.items():
                for index, outcome in self._process_group(namespace, members, catalogs):
                    results[index] = outcome

        return [outcome for outcome in results if outcome is not None]

    def _process_group(
        self,
        namespace: str,
        members: Sequence[Tuple[int, SourceUnit]],
        catalogs: Mapping[str, Catalog],
    ) -> List[Tuple[int, UnitOutcome]]:
        # Keys present only in other locales are taken even though the base lacks them.
        reserved = {
            key
            for locale, catalog in catalogs.items()
            if locale != self.base_locale
            for key in catalog.get(namespace, {})
        }
        generator = KeyGenerator(
            namespace,
            catalogs.get(self.base_locale, {}).get(namespace, {}),
            max_words=self.max_key_words,
            max_length=self.max_key_length,
            reserved=reserved,
        )
        processed: List[Tuple[int, UnitOutcome]] = []
        for index, unit in members:
            self._check_cancelled()
            processed.append((index, self._process_unit(unit, namespace, generator)))
        return processed

    def _process_unit(
        self,
        unit: SourceUnit,
        namespace: str,
        generator: KeyGenerator,
    ) -> UnitOutcome:
        try:
            candidates = list(self.scanner.scan(unit.template))
        except ScanError as exc:
            return self._skip(unit, namespace, ErrorCategory.SCAN, f"Template not scanned: {exc}")

        state = generator.checkpoint()
        assignments: List[Assignment] = []
        entries: List[ExtractedEntry] = []
        for candidate in candidates:
            try:
                key, reused = generator.assign(candidate)
            except KeyGenerationError as exc:
                self.error_policy.handle_error(
                    ErrorCategory.KEY_GENERATION, str(exc), unit=unit.component
                )
                continue
            assignments.append((candidate, key))
            entries.append(
                ExtractedEntry(key=key, text=candidate.message, unit=unit.component, reused=reused)
            )

        logic = unit.logic
        binding_inserted = False
        if assignments and unit.logic is not None:
            try:
                binding = self.binder.bind(unit.logic)
            except BindingError as exc:
                generator.rollback(state)
                return self._skip(unit, namespace, ErrorCategory.BINDING, str(exc))
            logic = binding.text
            binding_inserted = binding.changed

        template = self.rewriter.rewrite(unit.template, assignments)
        logger.debug(
            "%s: %d candidates, %d keys in %s", unit.component, len(candidates), len(entries), namespace
        )
        return UnitOutcome(
            unit=unit,
            namespace=namespace,
            template=template,
            logic=logic,
            entries=entries,
            candidates=len(candidates),
            binding_inserted=binding_inserted,
        )

    def _skip(
        self,
        unit: SourceUnit,
        namespace: str,
        category: ErrorCategory,
        message: str,
    ) -> UnitOutcome:
        self.error_policy.handle_error(category, message, unit=unit.component)
        return UnitOutcome(
            unit=unit,
            namespace=namespace,
            template=unit.template,
            logic=unit.logic,
            skipped=True,
            reason=message,
        )

    @staticmethod
    def _write_sources(outcomes: Sequence[UnitOutcome]) -> List[Path]:
        written: List[Path] = []
        for outcome in outcomes:
            if outcome.template_changed and outcome.unit.template_path is not None:
                write_text_atomically(outcome.unit.template_path, outcome.template)
                written.append(outcome.unit.template_path)
            if outcome.logic_changed and outcome.unit.logic_path is not None:
                write_text_atomically(outcome.unit.logic_path, outcome.logic or "")
                written.append(outcome.unit.logic_path)
        return written
