"""Centralized OpenAI client for the analysis pipeline.

All agents MUST use `complete()` (JSON mode) or `chat_reply()` (free text)
from this module. This ensures:
  - Model, temperature, timeout, and token limits are read from env.
  - JSON response format is enforced via response_format.
  - At most OPENAI_MAX_CONCURRENCY requests are in flight per event loop.
  - Every call has a hard timeout.
  - 1 transport retry, then 1 repair pass for unparseable JSON, then ServiceError.
  - Consistent logging across all agents.

Valid-but-empty JSON (e.g. ``{}``) is returned as-is; callers treat it as a
zero-value result, never as an error.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
import weakref
from typing import Any, Dict, List, Optional, Tuple

import httpx
from openai import AsyncOpenAI, OpenAIError

from ..errors import ServiceError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants: all read from environment with safe defaults
# ---------------------------------------------------------------------------
_OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
_MAX_RETRIES = 1  # 1 retry only (2 attempts total)
_NON_RETRYABLE_CODES = frozenset({400, 401, 403, 404, 422})

_REPAIR_SYSTEM_PROMPT = (
    "You repair malformed JSON produced by another model. "
    "Return ONLY a single valid JSON object. Keep every value that can be "
    "recovered, drop anything truncated or unparseable, and never add prose."
)


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def get_openai_key() -> str:
    """Read OPENAI_API_KEY from the environment. Raises ServiceError if missing."""
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        logger.warning("[OPENAI] API key missing (OPENAI_API_KEY)")
        raise ServiceError("OPENAI_API_KEY environment variable not set")
    return key


def get_openai_model() -> str:
    """Read OPENAI_MODEL from the environment (default: gpt-4o)."""
    return os.getenv("OPENAI_MODEL", "gpt-4o").strip()


def get_chat_model() -> str:
    """Model used for free-text persona chat (default: gpt-4o-mini)."""
    return os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini").strip()


def _get_temperature() -> float:
    return _env_float("OPENAI_TEMPERATURE", 0.4)


def _get_timeout() -> float:
    return _env_float("OPENAI_REQUEST_TIMEOUT", 60.0)


def _get_default_max_tokens() -> int:
    return _env_int("OPENAI_MAX_COMPLETION_TOKENS", 4000)


def _get_max_response_chars() -> int:
    return _env_int("OPENAI_MAX_RESPONSE_CHARS", 60000)


def _get_max_concurrency() -> int:
    return max(1, _env_int("OPENAI_MAX_CONCURRENCY", 5))


# One semaphore per event loop: asyncio primitives cannot be shared across loops.
_semaphores: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = (
    weakref.WeakKeyDictionary()
)


def _get_semaphore() -> asyncio.Semaphore:
    loop = asyncio.get_running_loop()
    sem = _semaphores.get(loop)
    if sem is None:
        sem = asyncio.Semaphore(_get_max_concurrency())
        _semaphores[loop] = sem
    return sem


# ---------------------------------------------------------------------------
# JSON sanitizer: extracts valid JSON from LLM output
# ---------------------------------------------------------------------------
def sanitize_json(raw: str) -> str:
    """Extract a JSON object from raw LLM output.

    Handles:
      - Markdown fences (```json ... ```)
      - Leading/trailing whitespace and BOM
      - Prose before/after JSON
      - Trailing commas before } or ]

    Raises ValueError if no JSON object is found.
    """
    text = raw.strip().lstrip("﻿")

    # 1. Strip markdown fences
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 3:
            text = parts[1]
        else:
            text = text[3:]

    # 2. Strip language identifier (e.g., "json\n")
    text = text.strip()
    if text.lower().startswith("json"):
        text = text[4:].strip()

    # A top-level array is rejected even when it wraps an object
    if text.startswith("["):
        raise ValueError("LLM returned a JSON array, not an object")

    # 3. Find first '{': everything before it is prose
    brace_idx = text.find("{")
    if brace_idx == -1:
        raise ValueError("LLM did not return a JSON object — no '{' found")
    text = text[brace_idx:]

    # 4. Find matching closing '}' from the end
    rbrace_idx = text.rfind("}")
    if rbrace_idx == -1:
        raise ValueError("LLM did not return a JSON object — no '}' found")
    text = text[: rbrace_idx + 1]

    # 5. Remove trailing commas before } or ]
    text = re.sub(r",\s*([}\]])", r"\1", text)

    return text


def parse_json_object(raw: str) -> Dict[str, Any]:
    """Sanitize and parse *raw* into a dict. Raises ValueError on failure."""
    parsed = json.loads(sanitize_json(raw))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def build_payload(
    *,
    model: str,
    messages: List[Dict[str, str]],
    max_completion_tokens: int,
    temperature: float,
) -> Dict[str, Any]:
    """Build an OpenAI chat completions payload with JSON mode enabled."""
    return {
        "model": model,
        "messages": messages,
        "max_tokens": max_completion_tokens,
        "temperature": temperature,
        "response_format": {"type": "json_object"},
    }


async def _request_completion(
    messages: List[Dict[str, str]],
    *,
    max_completion_tokens: int,
    temperature: float,
) -> Tuple[str, str]:
    """POST one chat completion and return ``(content, finish_reason)``.

    Retries once on timeout, transport error, or retryable HTTP status.
    Raises ServiceError when all attempts are exhausted.
    """
    api_key = get_openai_key()
    model = get_openai_model()
    timeout = _get_timeout()

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = build_payload(
        model=model,
        messages=messages,
        max_completion_tokens=max_completion_tokens,
        temperature=temperature,
    )

    last_error: Optional[BaseException] = None
    for attempt in range(_MAX_RETRIES + 1):
        t0 = time.perf_counter()
        logger.debug("[OPENAI] Calling %s (attempt %d/%d)", model, attempt + 1, _MAX_RETRIES + 1)
        try:
            async with _get_semaphore():
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await asyncio.wait_for(
                        client.post(_OPENAI_API_URL, headers=headers, json=payload),
                        timeout=timeout,
                    )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            last_error = exc
            logger.warning("[OPENAI] Timeout after %.1fs (attempt %d)", time.perf_counter() - t0, attempt + 1)
            continue
        except httpx.HTTPError as exc:
            last_error = exc
            logger.warning("[OPENAI] Transport error (attempt %d): %s", attempt + 1, exc)
            continue

        duration = time.perf_counter() - t0
        logger.debug("[OPENAI] HTTP %d (%.1fs)", response.status_code, duration)

        if response.status_code != 200:
            last_error = ServiceError(f"HTTP {response.status_code}: {response.text[:400]}")
            logger.warning("[OPENAI] Error response: HTTP %d", response.status_code)
            if response.status_code in _NON_RETRYABLE_CODES:
                break
            continue

        try:
            data = response.json()
            choice = data["choices"][0]
            content = (choice["message"]["content"] or "").strip()
            finish_reason = choice.get("finish_reason") or "stop"
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ServiceError("Malformed completion envelope", exc) from exc

        usage = data.get("usage")
        if usage:
            logger.debug(
                "[OPENAI] Tokens used: prompt=%s, completion=%s",
                usage.get("prompt_tokens", "?"), usage.get("completion_tokens", "?"),
            )
        return content, finish_reason

    raise ServiceError(
        f"Completion request failed after {_MAX_RETRIES + 1} attempts", last_error,
    )


def _parse_or_none(content: str, finish_reason: str, context: str) -> Optional[Dict[str, Any]]:
    """Return the parsed object, or None when the content needs a repair pass."""
    if finish_reason == "length":
        logger.warning("[%s] Response hit the token ceiling — JSON likely truncated", context)
        return None
    if len(content) > _get_max_response_chars():
        logger.warning("[%s] Response exceeds %d chars", context, _get_max_response_chars())
        return None
    try:
        return parse_json_object(content)
    except ValueError as exc:
        logger.warning("[%s] JSON parse failed: %s", context, exc)
        return None


def _with_shape(user: str, shape: str) -> str:
    return f"{user}\n\nRespond with ONLY a JSON object of this shape:\n{shape}"


async def complete(
    *,
    system: str,
    user: str,
    shape: str,
    max_tokens: int = 0,
    temperature: Optional[float] = None,
    context: str = "OPENAI",
) -> Dict[str, Any]:
    """Ask the completion service for a JSON object and return it parsed.

    Parameters
    ----------
    system, user : str
        The prompt pair.
    shape : str
        A JSON skeleton describing the expected object. Appended to the user
        prompt and reused by the repair pass.
    max_tokens : int
        Response token ceiling. 0 = env default; never above the env default.
    temperature : float, optional
        Override the env temperature.
    context : str
        Log tag of the calling agent.

    Raises
    ------
    ServiceError
        If the call fails or the output cannot be parsed even after repair.
    """
    ceiling = _get_default_max_tokens()
    tokens = ceiling if max_tokens <= 0 else min(max_tokens, ceiling)
    temp = _get_temperature() if temperature is None else temperature

    messages = [
        {"role": "system", "content": system},
        {"role": "user", "content": _with_shape(user, shape)},
    ]
    content, finish_reason = await _request_completion(
        messages, max_completion_tokens=tokens, temperature=temp,
    )
    if not content:
        raise ServiceError(f"[{context}] Empty completion")

    parsed = _parse_or_none(content, finish_reason, context)
    if parsed is not None:
        return parsed

    logger.info("[%s] Attempting JSON repair pass", context)
    repair_messages = [
        {"role": "system", "content": _REPAIR_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": _with_shape(
                "Rewrite the following text as valid JSON.\n\nTEXT:\n"
                + content[: _get_max_response_chars()],
                shape,
            ),
        },
    ]
    repaired, repair_finish = await _request_completion(
        repair_messages, max_completion_tokens=tokens, temperature=0.0,
    )
    parsed = _parse_or_none(repaired, repair_finish, context) if repaired else None
    if parsed is None:
        raise ServiceError(f"[{context}] Unparseable JSON after repair pass")
    return parsed


async def chat_reply(
    *,
    system_prompt: str,
    history: List[Dict[str, str]],
    max_tokens: int = 500,
) -> str:
    """Free-text chat completion used for persona conversations."""
    client = AsyncOpenAI(api_key=get_openai_key(), timeout=_get_timeout())
    messages = [{"role": "system", "content": system_prompt}, *history]
    try:
        async with _get_semaphore():
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=get_chat_model(),
                    messages=messages,
                    temperature=0.7,
                    max_tokens=max_tokens,
                ),
                timeout=_get_timeout(),
            )
    except (OpenAIError, asyncio.TimeoutError) as exc:
        raise ServiceError("Persona chat completion failed", exc) from exc

    return (response.choices[0].message.content or "").strip()
