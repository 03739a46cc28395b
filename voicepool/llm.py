"""Shared access to the hosted language-model provider."""

from __future__ import annotations

import os
from typing import Optional

from .models import Config


class LanguageModelError(RuntimeError):
    """Raised when the language-model provider cannot complete a request."""


def resolve_api_key(config: Config) -> Optional[str]:
    return config.openai_api_key or os.getenv("OPENAI_API_KEY")


def create_client(config: Config):
    """Return an OpenAI client configured for one-shot requests."""

    api_key = resolve_api_key(config)
    if api_key is None:
        raise LanguageModelError("An OpenAI API key is required. Run `voicepool config --openai-api-key ...`.")
    try:
        from openai import OpenAI
    except Exception as exc:  # pragma: no cover - optional dependency
        raise LanguageModelError("The `openai` package is required for this backend.") from exc
    return OpenAI(api_key=api_key, timeout=config.api_timeout, max_retries=0)
