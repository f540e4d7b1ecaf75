"""Key generation for extracted candidates."""

from __future__ import annotations

import hashlib
import logging
import re
import unicodedata
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import KeyGenerationError
from .namespacer import to_upper_snake
from .scanner import ENTITY_PATTERN
from .structures import Candidate, CandidateKind, TranslationKey

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORDS = 4
DEFAULT_MAX_LENGTH = 32

STOP_WORDS = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "at",
        "be",
        "by",
        "for",
        "from",
        "in",
        "is",
        "of",
        "on",
        "or",
        "the",
        "to",
        "with",
    }
)

# Content hints never equal an attribute-derived hint.
CONTENT_HINTS = {
    "button": "BTN",
    "a": "LINK",
    "label": "LBL",
    "th": "COL",
    "option": "OPT",
    "li": "ITEM",
    **{f"h{level}": "HEADING" for level in range(1, 7)},
}

WORD_PATTERN = re.compile(r"[A-Za-z0-9]+")
PLACEHOLDER_PATTERN = re.compile(r"\{\{[^{}]*\}\}")


def significant_words(text: str) -> List[str]:
    """ASCII-folded words of ``text`` without stop words (unless nothing remains)."""

    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    words = WORD_PATTERN.findall(folded)
    kept = [word for word in words if word.lower() not in STOP_WORDS]
    return kept or words


def role_hint(candidate: Candidate) -> Optional[str]:
    if candidate.kind is CandidateKind.ATTRIBUTE and candidate.attribute:
        return to_upper_snake(candidate.attribute)
    if candidate.element:
        return CONTENT_HINTS.get(candidate.element.lower())
    return None


class KeyGenerator:
    """Assigns collision-free keys inside one namespace.

    ``existing`` is a read-only view of the namespace (key to base text); the
    generator keeps its own overlay of the keys it assigns so repeated
    strings inside a run resolve to one key. ``reserved`` names keys that are
    taken elsewhere (another locale) and must never be assigned or reused.
    """

    def __init__(
        self,
        namespace: str,
        existing: Optional[Mapping[str, str]] = None,
        *,
        max_words: int = DEFAULT_MAX_WORDS,
        max_length: int = DEFAULT_MAX_LENGTH,
        reserved: Iterable[str] = (),
    ) -> None:
        self.namespace = namespace
        self.max_words = max(1, max_words)
        self.max_length = max(1, max_length)
        self._entries: Dict[str, str] = dict(existing or {})
        self._reserved = frozenset(reserved) - set(self._entries)

    def base_key(self, candidate: Candidate) -> str:
        cleaned = ENTITY_PATTERN.sub(" ", PLACEHOLDER_PATTERN.sub(" ", candidate.message)).strip()
        if not cleaned:
            raise KeyGenerationError(
                f"Candidate {candidate.text!r} is empty after normalisation."
            )
        words = significant_words(cleaned)
        if words:
            stem = self._truncate(words)
        else:
            digest = hashlib.sha1(cleaned.encode("utf-8")).hexdigest()[:6].upper()
            stem = f"TEXT_{digest}"
        hint = role_hint(candidate)
        return f"{stem}_{hint}" if hint else stem

    def assign(self, candidate: Candidate) -> Tuple[TranslationKey, bool]:
        """Return the key for ``candidate`` and whether an existing key was reused."""

        base = self.base_key(candidate)
        key = base
        counter = 2
        while True:
            current = self._entries.get(key)
            if key in self._reserved:
                logger.debug("Skipping %s.%s; it is taken in another locale", self.namespace, key)
            elif current is None:
                self._entries[key] = candidate.message
                logger.debug("Assigned %s.%s to %r", self.namespace, key, candidate.message)
                return TranslationKey(self.namespace, key), False
            elif current == candidate.message:
                logger.debug("Reusing %s.%s for %r", self.namespace, key, candidate.message)
                return TranslationKey(self.namespace, key), True
            key = f"{base}_{counter}"
            counter += 1

    def checkpoint(self) -> Dict[str, str]:
        return dict(self._entries)

    def rollback(self, state: Mapping[str, str]) -> None:
        self._entries = dict(state)

    def _truncate(self, words: List[str]) -> str:
        selected: List[str] = []
        length = 0
        for word in words[: self.max_words]:
            addition = len(word) + (1 if selected else 0)
            if selected and length + addition > self.max_length:
                break
            selected.append(word.upper())
            length += addition
        stem = "_".join(selected)
        return stem[: self.max_length].rstrip("_")
