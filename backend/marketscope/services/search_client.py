"""Perplexity integration — search-augmented completion for competitor discovery.

Returns the raw assistant text. The caller decides whether it is usable JSON;
this module only guarantees a non-empty string or a ServiceError.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time

import httpx

from ..errors import ServiceError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Perplexity API configuration
# ---------------------------------------------------------------------------
_PERPLEXITY_API_URL = "https://api.perplexity.ai/chat/completions"


def _get_search_key() -> str:
    """Read the Perplexity API key from the environment."""
    key = os.getenv("PERPLEXITY_API_KEY", "").strip()
    if not key:
        logger.warning("[SEARCH] API key missing (PERPLEXITY_API_KEY)")
        raise ServiceError("PERPLEXITY_API_KEY environment variable not set")
    return key


def _get_search_model() -> str:
    return os.getenv("PERPLEXITY_MODEL", "sonar-pro").strip()


def _get_search_timeout() -> float:
    try:
        return float(os.getenv("SEARCH_REQUEST_TIMEOUT", "60"))
    except ValueError:
        return 60.0


async def search_complete(
    *,
    system: str,
    user: str,
    max_tokens: int = 3000,
    temperature: float = 0.2,
) -> str:
    """Run one search-augmented completion and return the raw content."""
    api_key = _get_search_key()
    timeout = _get_search_timeout()
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = {
        "model": _get_search_model(),
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }

    t0 = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await asyncio.wait_for(
                client.post(_PERPLEXITY_API_URL, headers=headers, json=payload),
                timeout=timeout,
            )
    except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
        raise ServiceError(f"Search timed out after {time.perf_counter() - t0:.1f}s", exc) from exc
    except httpx.HTTPError as exc:
        raise ServiceError("Search transport error", exc) from exc

    logger.info("[SEARCH] HTTP %d (%.1fs)", response.status_code, time.perf_counter() - t0)
    if response.status_code != 200:
        raise ServiceError(f"Search API error: HTTP {response.status_code} {response.text[:300]}")

    try:
        content = response.json()["choices"][0]["message"]["content"] or ""
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise ServiceError("Malformed search response envelope", exc) from exc

    content = content.strip()
    if not content:
        raise ServiceError("No response from search API")
    return content
