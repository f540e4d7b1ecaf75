"""Per-locale translation catalogs: loading, additive merging, persistence.

Catalogs live in ``<directory>/<locale>.json`` and are strictly two levels
deep::

    {"USER_PROFILE": {"SUBMIT_BTN": "Submit"}}

A merge only ever adds keys. Values that already exist in any locale are
never touched, and every locale ends up with the same namespace/key sets;
locales without a translation receive a deterministic pending placeholder.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .errors import BackendTimeoutError, CatalogStructureError, TranslationProviderError
from .structures import Catalog, ExtractionResult, TranslationKey, mark

logger = logging.getLogger(__name__)

Translate = Callable[[str, str, str], str]

PENDING_TEMPLATE = "[pending:{locale}] {text}"


def pending_placeholder(text: str, locale: str) -> str:
    return PENDING_TEMPLATE.format(locale=locale, text=text)


def is_pending(value: str) -> bool:
    return value.startswith("[pending:")


def validate_catalog(data: Any, locale: str) -> Catalog:
    """Check the two-level nesting rule and return ``data`` unchanged."""

    if not isinstance(data, dict):
        raise CatalogStructureError(
            f"Catalog '{locale}' must be an object of namespaces at the root."
        )
    for namespace, entries in data.items():
        if "." in namespace:
            raise CatalogStructureError(
                f"Catalog '{locale}' contains the flat dotted key '{namespace}' "
                "where a namespace object is expected."
            )
        if not isinstance(entries, dict):
            raise CatalogStructureError(
                f"Catalog '{locale}': namespace '{namespace}' must map to an object, "
                f"found {type(entries).__name__}."
            )
        for key, value in entries.items():
            if "." in key:
                raise CatalogStructureError(
                    f"Catalog '{locale}' contains the dotted key '{namespace}.{key}' "
                    "inside a namespace."
                )
            if not isinstance(value, str):
                raise CatalogStructureError(
                    f"Catalog '{locale}': '{namespace}.{key}' must be a string, "
                    f"found {type(value).__name__}."
                )
    return data


def stage_text(path: Path, content: str) -> Path:
    """Write ``content`` to a temporary file next to ``path`` and return it."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        handle.write(content)
    return Path(handle.name)


def write_text_atomically(path: Path, content: str) -> None:
    os.replace(stage_text(path, content), path)


@dataclass
class MergeOutcome:
    """Merged catalogs plus the result annotated with per-locale values."""

    catalogs: Dict[str, Catalog]
    result: ExtractionResult
    added: int = 0
    placeholders: int = 0
    changed_locales: List[str] = field(default_factory=list)
    base_gaps: List[str] = field(default_factory=list)


class CatalogStore:
    """Loads, merges and persists the catalogs kept in one directory."""

    def __init__(self, directory: Path, *, indent: int = 2) -> None:
        self.directory = Path(directory)
        self.indent = indent

    def path_for(self, locale: str) -> Path:
        return self.directory / f"{locale}.json"

    def load(self, locale: str) -> Catalog:
        path = self.path_for(locale)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise CatalogStructureError(f"Catalog {path} is not valid JSON: {exc}") from exc
        return validate_catalog(data, locale)

    def load_all(self, locales: Iterable[str]) -> Dict[str, Catalog]:
        return {locale: self.load(locale) for locale in locales}

    def dumps(self, catalog: Catalog) -> str:
        return json.dumps(catalog, ensure_ascii=False, indent=self.indent) + "\n"

    def merge(
        self,
        catalogs: Mapping[str, Catalog],
        result: ExtractionResult,
        *,
        base_locale: str,
        known_locales: Iterable[str],
        translate: Optional[Translate] = None,
    ) -> MergeOutcome:
        """Merge ``result`` into copies of ``catalogs``; the inputs are not modified."""

        locales = [base_locale] + sorted(set(known_locales) - {base_locale})
        merged: Dict[str, Catalog] = {}
        for locale in locales:
            merged[locale] = copy.deepcopy(validate_catalog(catalogs.get(locale, {}), locale))
        base = merged[base_locale]

        added: Set[TranslationKey] = set()
        for entry in result:
            namespace = base.setdefault(entry.key.namespace, {})
            current = namespace.get(entry.key.key)
            if current is None:
                namespace[entry.key.key] = entry.text
                added.add(entry.key)
            elif current != entry.text:
                logger.warning(
                    "Key %s already holds %r; leaving it unchanged.", entry.key, current
                )

        placeholders, base_gaps = self._synchronise(merged, locales, base_locale, translate)

        reported: Set[TranslationKey] = set()
        entries = []
        for entry in result:
            is_new = entry.key in added and entry.key not in reported
            reported.add(entry.key)
            translations = {
                locale: merged[locale][entry.key.namespace][entry.key.key]
                for locale in locales
            }
            entries.append(mark(entry, added=is_new, translations=translations))

        changed = [
            locale for locale in locales if merged[locale] != catalogs.get(locale, {})
        ]
        logger.info(
            "Merged %d new keys into %d locales (%d placeholders).",
            len(added),
            len(locales),
            placeholders,
        )
        return MergeOutcome(
            catalogs=merged,
            result=ExtractionResult(entries=entries),
            added=len(added),
            placeholders=placeholders,
            changed_locales=changed,
            base_gaps=base_gaps,
        )

    def save_all(
        self,
        catalogs: Mapping[str, Catalog],
        previous: Optional[Mapping[str, Catalog]] = None,
    ) -> List[str]:
        """Persist changed catalogs, one atomic replace per locale.

        Every temporary file is written before the first replace, so a failure
        while serialising leaves all catalogs as they were.
        """

        staged: List[Tuple[Path, Path, str]] = []
        try:
            for locale, catalog in catalogs.items():
                path = self.path_for(locale)
                if previous is not None and previous.get(locale) == catalog:
                    continue
                content = self.dumps(catalog)
                if path.exists() and path.read_text(encoding="utf-8") == content:
                    continue
                if not path.exists() and not catalog:
                    continue
                staged.append((stage_text(path, content), path, locale))
        except Exception:
            for temporary, _, _ in staged:
                temporary.unlink(missing_ok=True)
            raise

        for temporary, path, locale in staged:
            os.replace(temporary, path)
            logger.info("Wrote catalog %s", path)
        return [locale for _, _, locale in staged]

    # --- Internal helpers -------------------------------------------------

    def _synchronise(
        self,
        merged: Dict[str, Catalog],
        locales: List[str],
        base_locale: str,
        translate: Optional[Translate],
    ) -> Tuple[int, List[str]]:
        """Give every locale the union of namespaces and keys.

        Returns the placeholder count and the qualified keys the base locale
        lacked. Those base entries are filled from another locale's text and
        need a source string from a developer.
        """

        union: Dict[str, Dict[str, str]] = {}
        for locale in locales:
            for namespace, entries in merged[locale].items():
                bucket = union.setdefault(namespace, {})
                for key, value in entries.items():
                    bucket.setdefault(key, value)

        sources = {
            namespace: dict(entries) for namespace, entries in merged[base_locale].items()
        }
        placeholders = 0
        base_gaps: List[str] = []
        for locale in locales:
            catalog = merged[locale]
            for namespace, entries in union.items():
                target = catalog.setdefault(namespace, {})
                for key, fallback in entries.items():
                    if key in target:
                        continue
                    source = sources.get(namespace, {}).get(key)
                    if locale == base_locale or source is None:
                        target[key] = pending_placeholder(fallback, locale)
                        placeholders += 1
                        if locale == base_locale:
                            base_gaps.append(f"{namespace}.{key}")
                            logger.warning(
                                "Key %s.%s is missing from base locale %s; filled from %r.",
                                namespace,
                                key,
                                base_locale,
                                fallback,
                            )
                        continue
                    value, pending = self._translate(translate, source, base_locale, locale)
                    target[key] = value
                    placeholders += int(pending)
        return placeholders, base_gaps

    @staticmethod
    def _translate(
        translate: Optional[Translate],
        text: str,
        source_locale: str,
        target_locale: str,
    ) -> Tuple[str, bool]:
        if translate is None:
            return pending_placeholder(text, target_locale), True
        try:
            value = translate(text, source_locale, target_locale)
        except (BackendTimeoutError, TranslationProviderError) as exc:
            logger.warning(
                "No %s translation for %r (%s); using a pending placeholder.",
                target_locale,
                text,
                exc,
            )
            return pending_placeholder(text, target_locale), True
        if not isinstance(value, str) or not value.strip():
            return pending_placeholder(text, target_locale), True
        return value, False
