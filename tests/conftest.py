"""
Shared fixtures for keyhole tests.

Provides a sample Angular component (template plus companion logic file),
a temporary catalog directory and small translation backends that make the
merge behaviour observable without a network connection.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Generator
from pathlib import Path

import pytest

from keyhole.catalog import CatalogStore
from keyhole.configuration import clear_settings_cache
from keyhole.providers import TranslationBackend
from keyhole.structures import SourceUnit

PROFILE_TEMPLATE = """<section class="profile">
  <h2>User profile</h2>
  <input type="text" placeholder="Your name">
  <button (click)="save()">Submit</button>
</section>
"""

PROFILE_LOGIC = """import { Component } from '@angular/core';

@Component({
  selector: 'app-user-profile',
  templateUrl: './user-profile.component.html',
})
export class UserProfileComponent {
  name = '';

  save(): void {}
}
"""


class UpperBackend(TranslationBackend):
    """Returns the text upper-cased and tagged with the target locale."""

    name = "upper"

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []

    def translate(self, text: str, *, source_locale: str, target_locale: str) -> str:
        self.calls.append((text, source_locale, target_locale))
        return f"{target_locale}:{text.upper()}"


class BlockingBackend(TranslationBackend):
    """Never answers until ``release`` is set."""

    name = "blocking"

    def __init__(self) -> None:
        self.release = threading.Event()

    def translate(self, text: str, *, source_locale: str, target_locale: str) -> str:
        self.release.wait(5)
        return text


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep user configuration and cached settings out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in (
        "KEYHOLE_BASE_LOCALE",
        "KEYHOLE_LOCALES",
        "KEYHOLE_CATALOG_DIR",
        "KEYHOLE_ATTRIBUTES",
        "KEYHOLE_BACKEND",
        "KEYHOLE_BACKEND_TIMEOUT",
        "KEYHOLE_PROVIDER_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def catalog_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "i18n"
    directory.mkdir()
    return directory


@pytest.fixture
def store(catalog_dir: Path) -> CatalogStore:
    return CatalogStore(catalog_dir)


@pytest.fixture
def profile_unit() -> SourceUnit:
    return SourceUnit(
        component="UserProfileComponent",
        template=PROFILE_TEMPLATE,
        logic=PROFILE_LOGIC,
    )


@pytest.fixture
def component_files(tmp_path: Path) -> tuple[Path, Path]:
    """Write the sample component to disk and return (template, logic) paths."""
    folder = tmp_path / "app" / "user-profile"
    folder.mkdir(parents=True)
    template = folder / "user-profile.component.html"
    logic = folder / "user-profile.component.ts"
    template.write_text(PROFILE_TEMPLATE, encoding="utf-8")
    logic.write_text(PROFILE_LOGIC, encoding="utf-8")
    return template, logic


@pytest.fixture
def upper_backend() -> UpperBackend:
    return UpperBackend()


@pytest.fixture
def blocking_backend() -> Generator[BlockingBackend, None, None]:
    backend = BlockingBackend()
    yield backend
    backend.release.set()


def write_catalog(directory: Path, locale: str, data: object) -> Path:
    path = directory / f"{locale}.json"
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


def read_catalog(directory: Path, locale: str) -> dict:
    return json.loads((directory / f"{locale}.json").read_text(encoding="utf-8"))
