"""
Tests for namespace derivation from component identifiers.
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

from keyhole.namespacer import (
    component_from_path,
    derive_namespace,
    strip_role_suffix,
    to_upper_snake,
)


class TestDeriveNamespace:
    """Test derive_namespace."""

    def test_strips_component_suffix(self) -> None:
        assert derive_namespace("UserProfileComponent") == "USER_PROFILE"

    def test_is_deterministic(self) -> None:
        assert derive_namespace("OrderListPage") == derive_namespace("OrderListPage")

    def test_is_stable_across_processes(self) -> None:
        script = (
            "from keyhole.namespacer import derive_namespace;"
            "from keyhole.keys import KeyGenerator;"
            "from keyhole.scanner import Scanner;"
            "[c] = Scanner().scan('<button>Save changes</button>');"
            "print(derive_namespace('UserProfileComponent'), KeyGenerator('NS').base_key(c))"
        )
        root = str(Path(__file__).resolve().parents[1])
        outputs = set()
        for seed in ("0", "1", "12345"):
            env = {**os.environ, "PYTHONHASHSEED": seed, "PYTHONPATH": root}
            completed = subprocess.run(
                [sys.executable, "-c", script],
                capture_output=True,
                text=True,
                env=env,
                check=True,
            )
            outputs.add(completed.stdout.strip())

        assert outputs == {"USER_PROFILE SAVE_CHANGES_BTN"}

    def test_kebab_identifier(self) -> None:
        assert derive_namespace("user-profile.component") == "USER_PROFILE"

    def test_acronyms_are_split(self) -> None:
        assert derive_namespace("HTMLEditorDialog") == "HTML_EDITOR"

    def test_identifier_that_is_only_a_suffix_is_kept(self) -> None:
        assert derive_namespace("Component") == "COMPONENT"

    def test_custom_suffixes(self) -> None:
        assert derive_namespace("CheckoutStep", ["Step"]) == "CHECKOUT"
        assert derive_namespace("CheckoutStep", []) == "CHECKOUT_STEP"

    @pytest.mark.parametrize("identifier", ["", "   ", "---"])
    def test_unusable_identifier_raises(self, identifier: str) -> None:
        with pytest.raises(ValueError):
            derive_namespace(identifier)


class TestHelpers:
    """Test the smaller naming helpers."""

    def test_to_upper_snake(self) -> None:
        assert to_upper_snake("aria-label") == "ARIA_LABEL"
        assert to_upper_snake("placeholder") == "PLACEHOLDER"
        assert to_upper_snake("userName") == "USER_NAME"

    def test_strip_role_suffix_only_first_match(self) -> None:
        assert strip_role_suffix("SettingsViewComponent", ["Component", "View"]) == "SettingsView"

    def test_component_from_path(self) -> None:
        path = Path("src/app/user-profile/user-profile.component.html")
        assert component_from_path(path) == "UserProfileComponent"
