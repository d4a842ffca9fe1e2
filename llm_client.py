"""
Cached OpenAI-compatible client factory and narrative text generation.

Every caller passes a literal fallback; a failed call is logged and the
fallback returned, never retried or raised.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from openai import AsyncOpenAI

from text_utils import clean_narrative_text

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


class LLMUnavailableError(RuntimeError):
    """Raised when the text-generation client cannot be used."""


@lru_cache(maxsize=8)
def get_llm_client(api_key: str, base_url: Optional[str] = None, timeout: float = 60.0) -> AsyncOpenAI:
    """Return a cached async OpenAI client for a given key/base URL pair."""
    return AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)


def _client() -> AsyncOpenAI:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key or api_key == "replace_me":
        raise LLMUnavailableError("OPENAI_API_KEY is not configured")
    return get_llm_client(
        api_key,
        os.getenv("OPENAI_BASE_URL") or None,
        float(os.getenv("OPENAI_TIMEOUT", "60")),
    )


async def complete(system_prompt: str, user_prompt: str, max_tokens: int = 600, model: Optional[str] = None) -> str:
    """Single chat completion; raises LLMUnavailableError on any failure."""
    client = _client()
    model_name = model or os.getenv("OPENAI_MODEL", DEFAULT_MODEL)
    try:
        result = await client.chat.completions.create(
            model=model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max_tokens,
            temperature=0.7,
        )
    except Exception as exc:
        raise LLMUnavailableError(f"OpenAI API error: {exc}") from exc

    content = result.choices[0].message.content if result.choices else ""
    content = clean_narrative_text((content or "").strip())
    if not content:
        raise LLMUnavailableError("empty completion")
    return content


async def generate_text(system_prompt: str, user_prompt: str, fallback: str, section: str = "narrative", **kwargs) -> str:
    """Generate narrative text, substituting ``fallback`` on any failure."""
    try:
        return await complete(system_prompt, user_prompt, **kwargs)
    except LLMUnavailableError as exc:
        logger.warning("Text generation failed for %s, using fallback: %s", section, exc)
        return fallback
