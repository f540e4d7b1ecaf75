"""Error definitions for the keyhole extractor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categorises runtime errors so the run can decide how far they reach."""

    SCAN = auto()
    KEY_GENERATION = auto()
    BINDING = auto()
    CATALOG = auto()
    TRANSLATION = auto()
    FILE_IO = auto()


class KeyholeError(Exception):
    """Base exception for all custom errors."""


class ScanError(KeyholeError):
    """Raised when a template region is malformed and cannot be scanned."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        self.offset = offset
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)


class KeyGenerationError(KeyholeError):
    """Raised when a candidate has no content left after normalisation."""


class CatalogStructureError(KeyholeError):
    """Raised when an existing catalog violates the nesting rules."""


class BindingError(KeyholeError):
    """Raised when the translation capability cannot be bound in a logic file."""


class BackendTimeoutError(KeyholeError):
    """Raised when the translation backend does not answer in time."""


class TranslationProviderConfigurationError(KeyholeError):
    """Raised when the translation backend is misconfigured."""


class TranslationProviderError(KeyholeError):
    """Raised when the translation backend fails permanently."""


class RunCancelled(KeyholeError):
    """Raised when a run is cancelled before its catalogs were written."""


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None
    unit: Optional[str] = None
