"""Translation backend abstractions."""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

from .errors import (
    BackendTimeoutError,
    TranslationProviderConfigurationError,
    TranslationProviderError,
)

logger = logging.getLogger(__name__)


class TranslationBackend(ABC):
    """Abstract adapter for services that translate catalog values."""

    name = "abstract"

    @abstractmethod
    def translate(
        self,
        text: str,
        *,
        source_locale: str,
        target_locale: str,
    ) -> str:
        """Translate ``text`` and return the translated value."""


class NullTranslationBackend(TranslationBackend):
    """A backend that never answers; every other locale gets a placeholder."""

    name = "none"

    def translate(self, text: str, *, source_locale: str, target_locale: str) -> str:
        raise TranslationProviderError("No translation backend configured.")


class EchoTranslationBackend(TranslationBackend):
    """A backend that returns the original text (useful for testing)."""

    name = "echo"

    def translate(self, text: str, *, source_locale: str, target_locale: str) -> str:
        return text


class OpenAITranslationBackend(TranslationBackend):
    """Translation backend that uses OpenAI (or Azure OpenAI) models."""

    name = "openai"
    DEFAULT_MODEL = "gpt-5-mini"
    SYSTEM_PROMPT = (
        "You are a professional software localiser. Return only JSON. "
        "Translate the user interface string into the requested locale. "
        "Keep placeholders such as {{name}} exactly as written, keep markup and "
        "numbers, and match the tone of a short UI label. "
        'Respond strictly with an object shaped as {"translation": "..."}. '
        "Do not add commentary. Do not wrap the JSON in markdown code fences."
    )

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str | None = None,
        azure_endpoint: str | None = None,
        azure_api_version: str | None = None,
        azure_deployment: str | None = None,
        timeout: float | None = None,
        debug: bool = False,
    ) -> None:
        self.debug = debug
        self.timeout = timeout
        if azure_endpoint:
            self._client, self.model = self._build_azure_client(
                api_key, azure_endpoint, azure_api_version, azure_deployment
            )
        else:
            self._client, self.model = self._build_openai_client(api_key, model)

    def _build_openai_client(self, api_key: str | None, model: str | None) -> tuple[Any, str]:
        if not api_key:
            raise TranslationProviderConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different backend."
            )
        OpenAI = _import_openai("OpenAI")
        return OpenAI(api_key=api_key, timeout=self.timeout), model or self.DEFAULT_MODEL

    def _build_azure_client(
        self,
        api_key: str | None,
        endpoint: str,
        api_version: str | None,
        deployment: str | None,
    ) -> tuple[Any, str]:
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": api_key,
                "AZURE_OPENAI_API_VERSION": api_version,
                "AZURE_OPENAI_DEPLOYMENT_NAME": deployment,
            }.items()
            if not value
        ]
        if missing:
            raise TranslationProviderConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )
        AzureOpenAI = _import_openai("AzureOpenAI")
        client = AzureOpenAI(
            api_key=api_key,
            api_version=api_version,
            azure_endpoint=endpoint,
            timeout=self.timeout,
        )
        return client, deployment  # type: ignore[return-value]

    def translate(self, text: str, *, source_locale: str, target_locale: str) -> str:
        payload = {
            "source_locale": source_locale,
            "target_locale": target_locale,
            "text": text,
        }
        self._log_debug("provider.request.payload", payload)
        try:
            response = self._client.responses.create(
                model=self.model,
                input=[
                    {
                        "role": "system",
                        "content": [{"type": "input_text", "text": self.SYSTEM_PROMPT}],
                    },
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "input_text",
                                "text": json.dumps(payload, ensure_ascii=False),
                            }
                        ],
                    },
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise TranslationProviderError(
                f"Translation service temporarily unavailable: {exc}"
            ) from exc

        output_text = getattr(response, "output_text", None)
        self._log_debug("provider.response.text", output_text)
        if not output_text:
            raise TranslationProviderError("Translation provider response empty.")
        return parse_translation(str(output_text))

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not self.debug:
            return
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload, ensure_ascii=False, indent=2)
        else:
            message = str(payload)
        logger.debug("[provider-debug] %s:\n%s", label, message)


def _import_openai(name: str) -> Any:
    try:
        import openai  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise TranslationProviderConfigurationError(
            "OpenAI Python SDK not installed. Install with `pip install openai`."
        ) from exc
    return getattr(openai, name)


def strip_code_fence(text: str) -> str:
    """Remove leading/trailing markdown code fences if present."""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    first_newline = stripped.find("\n")
    if first_newline == -1:
        return stripped
    body = stripped[first_newline + 1 :]
    closing_index = body.rfind("```")
    if closing_index != -1:
        body = body[:closing_index]
    return body.strip()


def parse_translation(raw: str) -> str:
    """Extract the translated value from a ``{"translation": ...}`` reply."""

    try:
        payload = json.loads(strip_code_fence(raw))
    except json.JSONDecodeError as exc:
        raise TranslationProviderError(
            f"Translation provider returned invalid JSON: {exc}"
        ) from exc
    translation = payload.get("translation") if isinstance(payload, dict) else None
    if not isinstance(translation, str) or not translation.strip():
        raise TranslationProviderError(
            "Translation provider response malformed: missing translation."
        )
    return translation


class BoundedTranslator:
    """Calls a backend with a timeout and a small retry budget.

    Each call runs on a daemon thread and is abandoned after ``timeout``
    seconds. A timeout, or a failure that outlasts the retry budget, marks
    the backend as stalled: later calls fail immediately with the same error
    type, so an unreachable service costs a run one round of waits.
    """

    def __init__(
        self,
        backend: TranslationBackend,
        *,
        timeout: float = 10.0,
        max_retries: int = 1,
        retry_backoff: Sequence[float] = (1.0, 4.0),
    ) -> None:
        self.backend = backend
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.retry_backoff = list(retry_backoff) or [0.0]
        self._failure: Optional[Exception] = None

    @property
    def stalled(self) -> bool:
        return self._failure is not None

    def __call__(self, text: str, source_locale: str, target_locale: str) -> str:
        if self._failure is not None:
            error_type = (
                BackendTimeoutError
                if isinstance(self._failure, BackendTimeoutError)
                else TranslationProviderError
            )
            raise error_type(
                f"Translation backend stalled earlier in this run: {self._failure}"
            )
        attempt = 0
        while True:
            try:
                return self._call_once(text, source_locale, target_locale)
            except TranslationProviderError as exc:
                attempt += 1
                if attempt > self.max_retries:
                    self._failure = exc
                    raise
                wait_time = self.retry_backoff[min(attempt - 1, len(self.retry_backoff) - 1)]
                logger.warning(
                    "Translation to %s failed (attempt %d of %d: %s). Retrying...",
                    target_locale,
                    attempt,
                    self.max_retries,
                    exc,
                )
                time.sleep(wait_time)

    def _call_once(self, text: str, source_locale: str, target_locale: str) -> str:
        outcome: Dict[str, Any] = {}

        def _target() -> None:
            try:
                outcome["value"] = self.backend.translate(
                    text, source_locale=source_locale, target_locale=target_locale
                )
            except Exception as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=_target, name="keyhole-backend", daemon=True)
        worker.start()
        worker.join(self.timeout)
        if worker.is_alive():
            self._failure = BackendTimeoutError(
                f"Translation backend gave no answer within {self.timeout:g} seconds."
            )
            raise self._failure
        error: Optional[Exception] = outcome.get("error")
        if isinstance(error, (TranslationProviderError, BackendTimeoutError)):
            raise error
        if error is not None:
            raise TranslationProviderError(f"Translation backend failed: {error}") from error
        return outcome["value"]


def build_backend(
    name: str | None,
    *,
    settings: Any = None,
    debug: bool = False,
) -> TranslationBackend:
    """Factory to create backends by name."""

    normalized = (name or "none").strip().lower().replace("-", "_")
    if normalized in {"none", "off", "placeholder"}:
        return NullTranslationBackend()
    if normalized in {"echo", "noop", "mock"}:
        return EchoTranslationBackend()
    if normalized in {"openai", "gpt", "azure_openai"}:
        if settings is None:
            raise TranslationProviderConfigurationError(
                "The OpenAI backend needs configuration settings."
            )
        secret = (
            settings.AZURE_OPENAI_API_KEY
            if normalized == "azure_openai"
            else settings.OPENAI_API_KEY
        )
        return OpenAITranslationBackend(
            api_key=secret.get_secret_value() if secret is not None else None,
            model=settings.OPENAI_MODEL,
            azure_endpoint=(
                settings.AZURE_OPENAI_ENDPOINT if normalized == "azure_openai" else None
            ),
            azure_api_version=settings.AZURE_OPENAI_API_VERSION,
            azure_deployment=settings.AZURE_OPENAI_DEPLOYMENT_NAME,
            timeout=settings.KEYHOLE_BACKEND_TIMEOUT,
            debug=debug,
        )
    raise TranslationProviderConfigurationError(
        f"Unknown translation backend '{name}'."
    )
