"""Replace extracted regions with translation references."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from .structures import Candidate, CandidateKind, TranslationKey

Assignment = Tuple[Candidate, TranslationKey]


class ReferenceSyntax(ABC):
    """Renders the host framework's reference expression for a key."""

    @abstractmethod
    def content_reference(self, key: TranslationKey, candidate: Candidate) -> str:
        """Reference replacing a free text node."""

    @abstractmethod
    def attribute_reference(self, key: TranslationKey, candidate: Candidate) -> str:
        """Bound attribute replacing a literal attribute."""


class NgxTranslateSyntax(ReferenceSyntax):
    """Angular templates resolved through the ngx-translate ``translate`` pipe."""

    def content_reference(self, key: TranslationKey, candidate: Candidate) -> str:
        return "{{ " + self._pipe(key, candidate) + " }}"

    def attribute_reference(self, key: TranslationKey, candidate: Candidate) -> str:
        name = candidate.attribute or ""
        # Angular has no property for hyphenated attributes such as aria-label.
        binding = f"[attr.{name}]" if "-" in name else f"[{name}]"
        expressions = "".join(value for _, value in candidate.params)
        if '"' not in expressions:
            return f'{binding}="{self._pipe(key, candidate)}"'
        if "'" not in expressions:
            return f"{binding}='" + self._pipe(key, candidate, quote='"') + "'"
        # Both quote kinds appear in the parameters; entities keep the value intact.
        escaped = self._pipe(key, candidate).replace('"', "&quot;")
        return f'{binding}="{escaped}"'

    @staticmethod
    def _pipe(key: TranslationKey, candidate: Candidate, quote: str = "'") -> str:
        expression = f"{quote}{key.qualified}{quote} | translate"
        if candidate.params:
            arguments = ", ".join(
                f"{name}: ({value})" if "|" in value else f"{name}: {value}"
                for name, value in candidate.params
            )
            expression += f": {{ {arguments} }}"
        return expression


class Rewriter:
    """Applies every replacement for one template in a single pass."""

    def __init__(self, syntax: Optional[ReferenceSyntax] = None) -> None:
        self.syntax = syntax or NgxTranslateSyntax()

    def render(self, key: TranslationKey, candidate: Candidate) -> str:
        if candidate.kind is CandidateKind.ATTRIBUTE:
            return self.syntax.attribute_reference(key, candidate)
        return self.syntax.content_reference(key, candidate)

    def rewrite(self, template: str, assignments: Sequence[Assignment]) -> str:
        """Return ``template`` with each candidate span replaced by its reference.

        Spans are rewritten from the highest start offset down so the offsets
        of the remaining spans stay valid. Characters outside the spans are
        left untouched, and no assignments means no change.
        """

        if not assignments:
            return template
        self._validate(template, assignments)

        result = template
        for candidate, key in sorted(
            assignments, key=lambda item: item[0].start, reverse=True
        ):
            result = (
                result[: candidate.start]
                + self.render(key, candidate)
                + result[candidate.end :]
            )
        return result

    @staticmethod
    def _validate(template: str, assignments: Sequence[Assignment]) -> None:
        ordered: List[Candidate] = sorted(
            (candidate for candidate, _ in assignments), key=lambda item: item.start
        )
        previous_end = 0
        for candidate in ordered:
            if candidate.start < previous_end:
                raise ValueError(
                    f"Overlapping candidate spans at offset {candidate.start}."
                )
            if not 0 <= candidate.start < candidate.end <= len(template):
                raise ValueError(
                    f"Candidate span {candidate.start}-{candidate.end} is outside the template."
                )
            region = template[candidate.start : candidate.end]
            if candidate.kind is CandidateKind.CONTENT and region != candidate.text:
                raise ValueError(
                    f"Candidate {candidate.text!r} no longer matches the template."
                )
            if candidate.kind is CandidateKind.ATTRIBUTE and candidate.text not in region:
                raise ValueError(
                    f"Attribute candidate {candidate.text!r} no longer matches the template."
                )
            previous_end = candidate.end
