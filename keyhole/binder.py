"""Make sure a component's logic file can use the translation service."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .errors import BindingError

logger = logging.getLogger(__name__)

IMPORT_STATEMENT = re.compile(r"^import\s[^;]*;[ \t]*$", re.MULTILINE)
DECORATOR_PATTERN = re.compile(r"@Component\s*\(")
CLASS_PATTERN = re.compile(r"\bclass\s+\w+[^{]*\{")
CONSTRUCTOR_PATTERN = re.compile(r"\bconstructor\s*\(")
MEMBER_INDENT = re.compile(r"\n([ \t]+)\S")


@dataclass
class BindingOutcome:
    text: str
    import_added: bool = False
    binding_added: bool = False

    @property
    def changed(self) -> bool:
        return self.import_added or self.binding_added


class DependencyBinder:
    """Inserts the service import and a constructor binding when missing.

    Running it on an already bound file returns the text unchanged.
    """

    def __init__(
        self,
        service: str = "TranslateService",
        module: str = "@ngx-translate/core",
        member: str = "translate",
    ) -> None:
        self.service = service
        self.module = module
        self.member = member
        quoted_module = re.escape(module)
        self._service_import = re.compile(
            r"import\s*(?:type\s+)?\{[^}]*\b" + re.escape(service) + r"\b[^}]*\}\s*from\s*['\"]"
            + quoted_module
            + r"['\"]"
        )
        self._module_import = re.compile(
            r"import\s*\{(?P<names>[^}]*)\}\s*from\s*['\"]" + quoted_module + r"['\"]"
        )
        self._bindings = (
            re.compile(r"\b[\w$]+\s*\??\s*:\s*" + re.escape(service) + r"\b"),
            re.compile(r"\binject\(\s*" + re.escape(service) + r"\s*\)"),
        )

    def has_import(self, source: str) -> bool:
        return bool(self._service_import.search(source))

    def has_binding(self, source: str) -> bool:
        return any(pattern.search(source) for pattern in self._bindings)

    def bind(self, source: str) -> BindingOutcome:
        outcome = BindingOutcome(text=source)
        if not self.has_import(outcome.text):
            outcome.text = self._insert_import(outcome.text)
            outcome.import_added = True
        if not self.has_binding(outcome.text):
            outcome.text = self._insert_binding(outcome.text)
            outcome.binding_added = True
        if outcome.changed:
            logger.debug(
                "Bound %s (import added: %s, binding added: %s)",
                self.service,
                outcome.import_added,
                outcome.binding_added,
            )
        return outcome

    # --- Internal helpers -------------------------------------------------

    def _insert_import(self, source: str) -> str:
        existing = self._module_import.search(source)
        if existing is not None:
            names = existing.group("names").rstrip()
            position = existing.start("names") + len(names)
            separator = "," if names.strip() and not names.endswith(",") else ""
            return source[:position] + f"{separator} {self.service}" + source[position:]

        imports = list(IMPORT_STATEMENT.finditer(source))
        quote = '"' if imports and '"' in imports[-1].group(0) and "'" not in imports[-1].group(0) else "'"
        line = f"import {{ {self.service} }} from {quote}{self.module}{quote};"
        if imports:
            end = imports[-1].end()
            return source[:end] + "\n" + line + source[end:]
        return line + "\n\n" + source if source.strip() else line + "\n"

    def _insert_binding(self, source: str) -> str:
        decorator = DECORATOR_PATTERN.search(source)
        declaration = CLASS_PATTERN.search(source, decorator.end() if decorator else 0)
        if declaration is None:
            raise BindingError("No class declaration found to bind the translation service.")

        parameter = f"private {self.member}: {self.service}"
        constructor = CONSTRUCTOR_PATTERN.search(source, declaration.end())
        if constructor is not None:
            position = constructor.end()
            rest = source[position:]
            whitespace = rest[: len(rest) - len(rest.lstrip())]
            if rest.lstrip().startswith(")"):
                return source[:position] + parameter + source[position:]
            if "\n" in whitespace:
                return source[:position] + whitespace + parameter + "," + source[position:]
            position += len(whitespace)
            return source[:position] + parameter + ", " + source[position:]

        brace = declaration.end()
        indent_match = MEMBER_INDENT.search(source, brace)
        indent = indent_match.group(1) if indent_match else "  "
        return source[:brace] + f"\n{indent}constructor({parameter}) {{}}\n" + source[brace:]
