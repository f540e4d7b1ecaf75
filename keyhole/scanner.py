"""Template scanning: locate the text-bearing regions worth extracting."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

from .errors import ScanError
from .structures import Candidate, CandidateKind

logger = logging.getLogger(__name__)

DEFAULT_ATTRIBUTES = frozenset({"placeholder", "title", "alt", "aria-label", "label"})

VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    }
)
RAW_TEXT_ELEMENTS = frozenset({"script", "style"})
# Elements carrying one of these attributes manage their own content.
OPAQUE_ATTRIBUTES = frozenset({"translate", "ngnonbindable"})

REFERENCE_PATTERN = re.compile(r"\|\s*translate\b")
ENTITY_PATTERN = re.compile(r"&(?:#\d+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")
LETTER_PATTERN = re.compile(r"[^\W\d_]")
TAG_NAME_PATTERN = re.compile(r"[A-Za-z][\w:.-]*")
ATTR_NAME_PATTERN = re.compile(r"[^\s\"'>/=]+")
UNQUOTED_VALUE_PATTERN = re.compile(r"[^\s\"'=<>`]+")
ASSIGN_PATTERN = re.compile(r"\s*=\s*")
WHITESPACE_PATTERN = re.compile(r"\s*")
SIMPLE_PATH_PATTERN = re.compile(
    r"^[A-Za-z_$][\w$]*(?:\s*(?:\?\.|!\.|\.)\s*[A-Za-z_$][\w$]*)*$"
)
PATH_SEPARATOR_PATTERN = re.compile(r"\?\.|!\.|\.")
BLOCK_PATTERN = re.compile(
    r"@(?:else\s+if|if|else|for|switch|case|default|defer|placeholder|loading|error|empty)\b"
)
LET_PATTERN = re.compile(r"@let\s+[A-Za-z_$][\w$]*\s*=")
ICU_PATTERN = re.compile(r"\{\s*[^{}\s,]+\s*,\s*(?:plural|select|selectordinal)\s*,")

Interpolation = Tuple[int, int, str]


class Attribute(NamedTuple):
    name: str
    value: Optional[str]
    start: int
    end: int
    value_start: int


def find_interpolations(text: str, base: int = 0) -> List[Interpolation]:
    """Return ``(start, end, expression)`` for every ``{{ ... }}`` in ``text``.

    Offsets are relative to ``text``; ``base`` is only used to report the
    absolute position of an unterminated interpolation.
    """

    found: List[Interpolation] = []
    index = text.find("{{")
    while index != -1:
        close = text.find("}}", index + 2)
        if close == -1:
            raise ScanError("Unterminated interpolation", base + index)
        found.append((index, close + 2, text[index + 2 : close].strip()))
        index = text.find("{{", close + 2)
    return found


def has_translatable_text(text: str, interpolations: Sequence[Interpolation]) -> bool:
    """True when ``text`` holds a letter outside interpolations and entities."""

    remaining: List[str] = []
    cursor = 0
    for start, end, _ in interpolations:
        remaining.append(text[cursor:start])
        cursor = end
    remaining.append(text[cursor:])
    literal = ENTITY_PATTERN.sub(" ", "".join(remaining))
    return bool(LETTER_PATTERN.search(literal))


def is_reference(interpolations: Sequence[Interpolation]) -> bool:
    """True when any interpolation already resolves a translation key."""

    return any(REFERENCE_PATTERN.search(expression) for _, _, expression in interpolations)


def _param_name(expression: str, taken: Iterable[str]) -> str:
    head = expression.split("|", 1)[0].strip()
    if SIMPLE_PATH_PATTERN.match(head):
        base = PATH_SEPARATOR_PATTERN.split(head)[-1].strip()
    else:
        base = "value"
    taken = set(taken)
    name = base
    counter = 2
    while name in taken:
        name = f"{base}{counter}"
        counter += 1
    return name


def compose_message(
    text: str,
    interpolations: Sequence[Interpolation],
) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
    """Replace interpolations with named ``{{param}}`` placeholders."""

    names: Dict[str, str] = {}
    parts: List[str] = []
    cursor = 0
    for start, end, expression in interpolations:
        parts.append(text[cursor:start])
        if expression not in names:
            names[expression] = _param_name(expression, names.values())
        parts.append("{{" + names[expression] + "}}")
        cursor = end
    parts.append(text[cursor:])
    params = tuple((name, expression) for expression, name in names.items())
    return "".join(parts), params


def _skip_expression(text: str, position: int, stop: str) -> int:
    """Index of ``stop`` after ``position``, ignoring quoted strings and nested parentheses."""

    depth = 0
    length = len(text)
    while position < length:
        char = text[position]
        if char in "'\"`":
            close = text.find(char, position + 1)
            if close == -1:
                return -1
            position = close + 1
            continue
        if char == stop and depth == 0:
            return position
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        position += 1
    return -1


def block_syntax_end(template: str, index: int) -> Optional[Tuple[int, bool]]:
    """Match control-flow syntax starting at ``index``.

    Returns the end offset and whether a block body was opened, or None when
    ``index`` does not start ``@if (...) {``, ``@else {``, ``@let x = ...;``
    or another block header.
    """

    let = LET_PATTERN.match(template, index)
    if let is not None:
        semicolon = _skip_expression(template, let.end(), ";")
        if semicolon == -1:
            raise ScanError("Unterminated @let declaration", index)
        return semicolon + 1, False

    header = BLOCK_PATTERN.match(template, index)
    if header is None:
        return None
    position = WHITESPACE_PATTERN.match(template, header.end()).end()
    has_parameters = template.startswith("(", position)
    if has_parameters:
        close = _skip_expression(template, position + 1, ")")
        if close == -1:
            raise ScanError("Unterminated block parameters", position)
        position = WHITESPACE_PATTERN.match(template, close + 1).end()
    if not template.startswith("{", position):
        if has_parameters:
            raise ScanError("Block header without a body", index)
        return None
    return position + 1, True


def icu_end(template: str, index: int) -> Optional[int]:
    """End offset of an ICU ``{count, plural, ...}`` expression starting at ``index``."""

    if ICU_PATTERN.match(template, index) is None:
        return None
    depth = 0
    for position in range(index, len(template)):
        char = template[position]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return position + 1
    raise ScanError("Unterminated ICU expression", index)


class CandidateStream:
    """A lazy, restartable sequence of candidates for one template.

    Each iteration scans the template again from the start, so iterating
    twice over an unchanged template yields the same candidates.
    """

    def __init__(self, scanner: "Scanner", template: str) -> None:
        self.scanner = scanner
        self.template = template

    def __iter__(self) -> Iterator[Candidate]:
        return self.scanner.iter_candidates(self.template)


class Scanner:
    """Finds free text content and allow-listed literal attributes."""

    def __init__(self, attributes: Iterable[str] = DEFAULT_ATTRIBUTES) -> None:
        self.attributes = frozenset(name.lower() for name in attributes)

    def scan(self, template: str) -> CandidateStream:
        return CandidateStream(self, template)

    def iter_candidates(self, template: str) -> Iterator[Candidate]:
        # Each entry is (element name, content is opaque).
        stack: List[Tuple[str, bool]] = []
        blocks = 0
        index = 0
        length = len(template)

        while index < length:
            if template.startswith("<!--", index):
                end = template.find("-->", index + 4)
                if end == -1:
                    raise ScanError("Unterminated comment", index)
                index = end + 3
                continue

            if template.startswith("<!", index) or template.startswith("<?", index):
                end = template.find(">", index)
                if end == -1:
                    raise ScanError("Unterminated declaration", index)
                index = end + 1
                continue

            if template.startswith("</", index):
                match = TAG_NAME_PATTERN.match(template, index + 2)
                if match:
                    end = template.find(">", match.end())
                    if end == -1:
                        raise ScanError("Unterminated closing tag", index)
                    self._close(stack, match.group(0).lower())
                    index = end + 1
                    continue
            elif template.startswith("<", index):
                match = TAG_NAME_PATTERN.match(template, index + 1)
                if match:
                    name = match.group(0).lower()
                    end, self_closing, attributes = self._read_attributes(
                        template, match.end(), index
                    )
                    inherited = bool(stack) and stack[-1][1]
                    if not inherited:
                        yield from self._attribute_candidates(name, attributes)
                    opaque = inherited or any(
                        attribute.name.lower() in OPAQUE_ATTRIBUTES
                        for attribute in attributes
                    )
                    if name in RAW_TEXT_ELEMENTS and not self_closing:
                        closing = re.compile(rf"</{name}\s*>", re.IGNORECASE)
                        found = closing.search(template, end)
                        if found is None:
                            raise ScanError(f"Unterminated <{name}> element", index)
                        index = found.end()
                        continue
                    if not self_closing and name not in VOID_ELEMENTS:
                        stack.append((name, opaque))
                    index = end
                    continue

            syntax = self._syntax_end(template, index, blocks)
            if syntax is not None:
                index, change = syntax
                blocks += change
                continue

            end = self._text_end(template, index, blocks)
            candidate = self._text_candidate(template, index, end, stack)
            if candidate is not None:
                yield candidate
            index = end

        if stack:
            logger.debug("Template ended with unclosed elements: %s", [name for name, _ in stack])

    # --- Internal helpers -------------------------------------------------

    @staticmethod
    def _close(stack: List[Tuple[str, bool]], name: str) -> None:
        for position in range(len(stack) - 1, -1, -1):
            if stack[position][0] == name:
                del stack[position:]
                return
        logger.debug("Ignoring stray closing tag </%s>", name)

    @staticmethod
    def _syntax_end(template: str, index: int, blocks: int) -> Optional[Tuple[int, int]]:
        """Span of control-flow or ICU syntax at ``index`` and the block depth change."""

        char = template[index]
        if char == "@":
            header = block_syntax_end(template, index)
            if header is not None:
                end, opens = header
                return end, 1 if opens else 0
        elif char == "{" and not template.startswith("{{", index):
            end = icu_end(template, index)
            if end is not None:
                return end, 0
        elif char == "}" and blocks:
            return index + 1, -1
        return None

    @classmethod
    def _text_end(cls, template: str, index: int, blocks: int = 0) -> int:
        length = len(template)
        position = index + 1 if template[index] == "<" else index
        while position < length:
            if position > index and template[position] in "@{}":
                if cls._syntax_end(template, position, blocks) is not None:
                    break
            if template.startswith("{{", position):
                close = template.find("}}", position + 2)
                if close == -1:
                    raise ScanError("Unterminated interpolation", position)
                position = close + 2
                continue
            if template[position] == "<" and position + 1 < length:
                following = template[position + 1]
                if following.isalpha() or following in "/!?":
                    break
            position += 1
        return position

    @staticmethod
    def _read_attributes(
        template: str,
        position: int,
        tag_start: int,
    ) -> Tuple[int, bool, List[Attribute]]:
        length = len(template)
        attributes: List[Attribute] = []
        while True:
            position = WHITESPACE_PATTERN.match(template, position).end()
            if position >= length:
                raise ScanError("Unterminated tag", tag_start)
            if template[position] == ">":
                return position + 1, False, attributes
            if template.startswith("/>", position):
                return position + 2, True, attributes
            if template[position] == "/":
                position += 1
                continue

            name_match = ATTR_NAME_PATTERN.match(template, position)
            if name_match is None:
                raise ScanError("Malformed attribute", position)
            start = position
            position = name_match.end()
            value: Optional[str] = None
            value_start = position

            assign = ASSIGN_PATTERN.match(template, position)
            if assign is not None:
                position = assign.end()
                if position >= length:
                    raise ScanError("Unterminated tag", tag_start)
                quote = template[position]
                if quote in "\"'":
                    close = template.find(quote, position + 1)
                    if close == -1:
                        raise ScanError("Unterminated attribute value", position)
                    value_start = position + 1
                    value = template[value_start:close]
                    position = close + 1
                else:
                    unquoted = UNQUOTED_VALUE_PATTERN.match(template, position)
                    if unquoted is None:
                        raise ScanError("Missing attribute value", position)
                    value_start = position
                    value = unquoted.group(0)
                    position = unquoted.end()

            attributes.append(
                Attribute(
                    name=name_match.group(0),
                    value=value,
                    start=start,
                    end=position,
                    value_start=value_start,
                )
            )

    def _attribute_candidates(
        self,
        element: str,
        attributes: Sequence[Attribute],
    ) -> Iterator[Candidate]:
        for attribute in attributes:
            if attribute.name.lower() not in self.attributes or attribute.value is None:
                continue
            value = attribute.value
            stripped = value.strip()
            offset = attribute.value_start + (len(value) - len(value.lstrip()))
            interpolations = find_interpolations(stripped, offset)
            if is_reference(interpolations):
                continue
            if not has_translatable_text(stripped, interpolations):
                continue
            message, params = compose_message(stripped, interpolations)
            logger.debug(
                "Attribute candidate %s=%r on <%s>", attribute.name, stripped, element
            )
            yield Candidate(
                kind=CandidateKind.ATTRIBUTE,
                text=stripped,
                start=attribute.start,
                end=attribute.end,
                message=message,
                element=element,
                attribute=attribute.name,
                params=params,
            )

    @staticmethod
    def _text_candidate(
        template: str,
        start: int,
        end: int,
        stack: Sequence[Tuple[str, bool]],
    ) -> Optional[Candidate]:
        if stack and stack[-1][1]:
            return None
        raw = template[start:end]
        stripped = raw.strip()
        if not stripped:
            return None
        leading = raw[: len(raw) - len(raw.lstrip())]
        trailing = raw[len(raw.rstrip()) :]
        text_start = start + len(leading)
        interpolations = find_interpolations(stripped, text_start)
        if is_reference(interpolations):
            return None
        if not has_translatable_text(stripped, interpolations):
            return None
        message, params = compose_message(stripped, interpolations)
        element = stack[-1][0] if stack else None
        logger.debug("Content candidate %r in <%s>", stripped, element)
        return Candidate(
            kind=CandidateKind.CONTENT,
            text=stripped,
            start=text_start,
            end=text_start + len(stripped),
            message=message,
            element=element,
            leading_whitespace=leading,
            trailing_whitespace=trailing,
            params=params,
        )
