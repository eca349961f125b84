from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, TypeVar

from pydantic import ValidationError

from .config import AppConfig, BackendSettings
from .errors import BackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_json_object(content: str) -> Dict[str, Any]:
    """
    Parse a model reply that should be a single JSON object.
    Tolerates a ```json fenced block around it.
    """
    text = (content or "").strip()
    if not text:
        raise BackendError("Model returned an empty response")
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
        text = text.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise BackendError(f"Model did not return valid JSON. Error={e}. Content={content[:300]}") from e
    if not isinstance(data, dict):
        raise BackendError(f"Model returned {type(data).__name__}, expected a JSON object")
    return data


class JsonBackend(ABC):
    """A generative backend that answers a system+user prompt with a JSON object."""

    name = "synthetic"
    available = False

    @abstractmethod
    async def complete_json(
        self,
        *,
        system: str,
        user: str,
        temperature: float = 0.3,
        max_tokens: int = 1200,
    ) -> Dict[str, Any]:
        ...


class OpenAIBackend(JsonBackend):
    name = "openai"
    available = True

    def __init__(self, settings: BackendSettings, client: Any = None) -> None:
        self._settings = settings
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            # Lazy import so search-only commands do not need the SDK configured
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self._settings.api_key)
        return self._client

    async def complete_json(
        self,
        *,
        system: str,
        user: str,
        temperature: float = 0.3,
        max_tokens: int = 1200,
    ) -> Dict[str, Any]:
        try:
            resp = await self._get_client().chat.completions.create(
                model=self._settings.model,
                temperature=temperature,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise BackendError(f"OpenAI request failed: {type(e).__name__}: {e}") from e

        choices = getattr(resp, "choices", None) or []
        if not choices:
            raise BackendError("No response from OpenAI")
        return parse_json_object(choices[0].message.content or "")


class ClaudeBackend(JsonBackend):
    name = "claude"
    available = True

    def __init__(self, settings: BackendSettings, client: Any = None) -> None:
        self._settings = settings
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(api_key=self._settings.api_key)
        return self._client

    async def complete_json(
        self,
        *,
        system: str,
        user: str,
        temperature: float = 0.3,
        max_tokens: int = 1200,
    ) -> Dict[str, Any]:
        try:
            resp = await self._get_client().messages.create(
                model=self._settings.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system + "\nRespond with a single JSON object and nothing else.",
                messages=[{"role": "user", "content": user}],
            )
        except Exception as e:
            raise BackendError(f"Claude request failed: {type(e).__name__}: {e}") from e

        blocks = getattr(resp, "content", None) or []
        text = "".join(getattr(b, "text", "") or "" for b in blocks)
        if not text:
            raise BackendError("No response from Claude")
        return parse_json_object(text)


class SyntheticBackend(JsonBackend):
    """Stands in when no credential is configured; callers go straight to their synthetic output."""

    async def complete_json(self, **kwargs: Any) -> Dict[str, Any]:
        raise BackendError("No generative backend configured")


def select_backend(
    primary: BackendSettings,
    secondary: BackendSettings,
    placeholders: tuple,
    *,
    primary_client: Any = None,
    secondary_client: Any = None,
) -> JsonBackend:
    """
    Strict precedence: primary if its key is real, else secondary, else synthetic.
    Never a race between the two.
    """
    if primary.usable(placeholders):
        return OpenAIBackend(primary, client=primary_client)
    if secondary.usable(placeholders):
        return ClaudeBackend(secondary, client=secondary_client)
    return SyntheticBackend()


def backend_from_config(cfg: AppConfig) -> JsonBackend:
    return select_backend(cfg.primary_backend, cfg.secondary_backend, cfg.placeholders)


async def generate_or_fallback(
    backend: JsonBackend,
    *,
    system: str,
    user: str,
    build: Callable[[Dict[str, Any]], T],
    fallback: Callable[[], T],
    label: str,
    temperature: float = 0.3,
    max_tokens: int = 1200,
) -> T:
    """
    Run one structured generation and shape it with `build`.

    Missing configuration routes straight to `fallback`. Backend failures and
    replies that `build` rejects are logged and also end in `fallback`, so the
    caller always gets a well-formed result.
    """
    if not backend.available:
        logger.info("%s: no generative backend configured, using synthetic output", label)
        return fallback()

    try:
        payload = await backend.complete_json(
            system=system,
            user=user,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return build(payload)
    except BackendError as e:
        logger.warning("%s: %s backend failed (%s), using synthetic output", label, backend.name, e)
    except (ValidationError, KeyError, TypeError, ValueError) as e:
        logger.warning("%s: %s reply did not fit the expected shape (%s), using synthetic output", label, backend.name, e)
    return fallback()


def dumps_context(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)
