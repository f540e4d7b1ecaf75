"""Command line interface for the keyhole extractor."""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import Iterable, List, Optional, Sequence

from .catalog import CatalogStore
from .configuration import KeyholeConfig, get_settings
from .errors import (
    CatalogStructureError,
    KeyholeError,
    RunCancelled,
    TranslationProviderConfigurationError,
)
from .extractor import ExtractionRunner, ExtractionSummary
from .namespacer import component_from_path
from .providers import build_backend
from .reporter import render_table
from .structures import SourceUnit

LOGIC_SUFFIX = ".ts"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keyhole",
        description=(
            "Extract hardcoded UI strings from component templates into "
            "namespaced translation catalogs."
        ),
    )
    parser.add_argument(
        "templates",
        nargs="+",
        help="Template files to process (the companion .ts file is picked up automatically).",
    )
    parser.add_argument(
        "-c",
        "--component",
        help="Component identifier; only valid with a single template.",
    )
    parser.add_argument(
        "-d",
        "--catalog-dir",
        help="Directory holding <locale>.json catalogs.",
    )
    parser.add_argument(
        "-b",
        "--base-locale",
        help="Locale that receives the original source text.",
    )
    parser.add_argument(
        "-l",
        "--locale",
        action="append",
        dest="locales",
        help="Known locale to keep in sync (repeatable).",
    )
    parser.add_argument(
        "-a",
        "--attribute",
        action="append",
        dest="attributes",
        help="Translatable attribute name (repeatable; replaces the configured list).",
    )
    parser.add_argument(
        "-p",
        "--backend",
        help="Translation backend for non-base locales (none, echo, openai, azure_openai).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait for the translation backend before using a placeholder.",
    )
    parser.add_argument(
        "-w",
        "--workers",
        type=int,
        default=1,
        help="Worker threads used to process components (default: 1).",
    )
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Compute the changes and print the report without writing files.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete backend requests and responses for troubleshooting.",
    )
    return parser


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def read_text(path: pathlib.Path) -> str:
    # newline="" keeps line endings byte-identical on rewrite.
    with path.open("r", encoding="utf-8", newline="") as handle:
        return handle.read()


def load_units(
    templates: Sequence[str],
    component: Optional[str] = None,
) -> List[SourceUnit]:
    """Build SourceUnits from template paths and their companion logic files."""

    if component and len(templates) != 1:
        raise KeyholeError("--component can only be used with a single template.")

    units: List[SourceUnit] = []
    for raw_path in templates:
        template_path = pathlib.Path(raw_path).expanduser().resolve()
        if not template_path.is_file():
            raise FileNotFoundError(f"Template not found: {raw_path}")
        logic_path = template_path.with_suffix(LOGIC_SUFFIX)
        has_logic = logic_path.is_file() and logic_path != template_path
        units.append(
            SourceUnit(
                component=component or component_from_path(template_path),
                template=read_text(template_path),
                logic=read_text(logic_path) if has_logic else None,
                template_path=template_path,
                logic_path=logic_path if has_logic else None,
            )
        )
    return units


def execute_extraction(
    *,
    templates: Sequence[str],
    settings: KeyholeConfig,
    component: Optional[str] = None,
    catalog_dir: Optional[str] = None,
    base_locale: Optional[str] = None,
    locales: Optional[Sequence[str]] = None,
    attributes: Optional[Sequence[str]] = None,
    backend: Optional[str] = None,
    timeout: Optional[float] = None,
    workers: int = 1,
    dry_run: bool = False,
    provider_debug: bool = False,
) -> tuple[int, ExtractionSummary | None, str | None]:
    """Execute an extraction run and return the exit code, summary, and message."""

    base = base_locale or settings.KEYHOLE_BASE_LOCALE
    known = list(locales) if locales else list(settings.KEYHOLE_LOCALES)

    try:
        units = load_units(templates, component)
        translation_backend = build_backend(
            backend or settings.KEYHOLE_BACKEND,
            settings=settings,
            debug=provider_debug,
        )
    except (FileNotFoundError, KeyholeError) as exc:
        return 1, None, str(exc)

    runner = ExtractionRunner(
        store=CatalogStore(pathlib.Path(catalog_dir or settings.KEYHOLE_CATALOG_DIR)),
        base_locale=base,
        known_locales=known,
        attributes=attributes or settings.KEYHOLE_ATTRIBUTES,
        role_suffixes=settings.KEYHOLE_ROLE_SUFFIXES,
        max_key_words=settings.KEYHOLE_MAX_KEY_WORDS,
        max_key_length=settings.KEYHOLE_MAX_KEY_LENGTH,
        backend=translation_backend,
        backend_timeout=timeout or settings.KEYHOLE_BACKEND_TIMEOUT,
        backend_retries=settings.KEYHOLE_BACKEND_RETRIES,
        max_workers=workers,
        dry_run=dry_run,
    )

    try:
        summary = runner.run(units)
    except CatalogStructureError as exc:
        return 2, None, f"{exc}\nRun aborted; no files were modified."
    except RunCancelled as exc:
        return 2, None, str(exc)
    except KeyboardInterrupt:
        runner.cancel()
        return 2, None, "Extraction interrupted by user."
    except KeyholeError as exc:
        return 1, None, str(exc)
    except OSError as exc:
        return 1, None, f"Could not write output files: {exc}"

    return (0 if summary.complete else 1), summary, None


def print_summary(summary: ExtractionSummary) -> None:
    """Output a friendly report once processing completes."""

    heading = "Extraction complete" if summary.complete else "Extraction finished with skipped units"
    print(f"\n{heading}{' (dry run)' if summary.dry_run else ''}.")
    print(
        "  Components:      "
        f"{summary.processed_units} processed / {summary.total_units} total "
        f"({len(summary.skipped_units)} skipped)"
    )
    print(f"  Candidates:      {summary.total_candidates}")
    print(f"  Keys:            {summary.keys_added} added, {summary.keys_reused} reused")
    print(f"  Locales:         {', '.join(summary.locales)} (base: {summary.base_locale})")
    if summary.placeholders:
        print(f"  Pending values:  {summary.placeholders}")
    if summary.base_gaps:
        print(f"  Missing in {summary.base_locale}:")
        for key in summary.base_gaps:
            print(f"    - {key}")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.skipped_units:
        print("  Skipped:")
        for component, reason in summary.skipped_units:
            print(f"    - {component}: {reason}")
    if summary.report:
        print()
        print(render_table(summary.report, summary.base_locale, summary.locales))
    else:
        print("  No new keys.")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    setup_logging(args.verbose or args.debug_provider)

    try:
        settings = get_settings()
    except TranslationProviderConfigurationError as exc:
        print(exc)
        return 1

    if args.workers < 1:
        parser.error("--workers must be at least 1")

    exit_code, summary, message = execute_extraction(
        templates=args.templates,
        settings=settings,
        component=args.component,
        catalog_dir=args.catalog_dir,
        base_locale=args.base_locale,
        locales=args.locales,
        attributes=args.attributes,
        backend=args.backend,
        timeout=args.timeout,
        workers=args.workers,
        dry_run=args.dry_run,
        provider_debug=bool(args.debug_provider or settings.KEYHOLE_PROVIDER_DEBUG),
    )

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
