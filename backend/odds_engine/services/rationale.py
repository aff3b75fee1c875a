from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, TypeVar

import httpx

from odds_engine.config import settings
from odds_engine.errors import AnnotationTimeout

logger = logging.getLogger(__name__)

P = TypeVar("P")

SYSTEM_PROMPTS = {
    "value_hunter": (
        "You are a concise sports betting analyst. Explain in one sentence of 15 words or less why the best "
        "price offers value against the consensus. Be factual and cite the edge."
    ),
    "momentum_surge": (
        "You are a concise sports betting analyst. Explain in one sentence of 15 words or less the recent line "
        "movement and why this book looks slow to follow it."
    ),
}


def templated_rationale(summary: dict[str, Any]) -> str:
    """Offline rationale used when no generator is configured."""
    parts = (summary.get("player"), summary.get("selection"), summary.get("market"), summary.get("line"))
    subject = " ".join(str(part) for part in parts if part is not None)
    book = summary.get("best_book") or summary.get("book")
    if summary.get("segment") == "momentum_surge":
        return f"{subject} @ {book}: consensus moved {summary.get('consensus_change_long', 0):+.2%} over {summary['windows'][1]}"
    return f"{subject} @ {book} (+{summary.get('edge_percent', 0):.1f}% vs consensus, {summary.get('book_count', 0)} books)"


def _cache_key(summary: dict[str, Any]) -> str:
    return hashlib.sha1(json.dumps(summary, sort_keys=True, default=str).encode("utf-8")).hexdigest()


class RationaleClient:
    """OpenAI-compatible chat-completions client. One best-effort attempt per call."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = settings.rationale_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.rationale_base_url).rstrip("/")
        self.model = model or settings.rationale_model
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def annotate(self, summary: dict[str, Any]) -> str:
        if not self.enabled:
            return templated_rationale(summary)

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPTS.get(summary.get("segment"), SYSTEM_PROMPTS["value_hunter"])},
                {"role": "user", "content": json.dumps(summary, sort_keys=True, default=str)},
            ],
            "max_tokens": 50,
            "temperature": 0.2,
        }
        async with httpx.AsyncClient(timeout=20, transport=self.transport) as client:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
            )
            response.raise_for_status()
            data = response.json()

        text = (data.get("choices") or [{}])[0].get("message", {}).get("content") or ""
        if not text.strip():
            raise ValueError("rationale response had no content")
        return text.strip()


class RationaleAnnotator:
    """Attaches rationales to already-valid picks with a bounded worker pool and hard timeout."""

    def __init__(
        self,
        client: RationaleClient | None = None,
        *,
        timeout_seconds: float | None = None,
        max_concurrency: int | None = None,
        cache_ttl_seconds: int | None = None,
        cache_max_entries: int | None = None,
    ) -> None:
        self.client = client or RationaleClient()
        self.timeout_seconds = settings.rationale_timeout_seconds if timeout_seconds is None else timeout_seconds
        self.max_concurrency = max_concurrency or settings.rationale_max_concurrency
        self.cache_ttl_seconds = settings.rationale_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
        self.cache_max_entries = cache_max_entries or settings.rationale_cache_max_entries
        # Insertion order is expiry order since every entry gets the same TTL.
        self._cache: OrderedDict[str, tuple[float, str]] = OrderedDict()

    def _cached(self, key: str) -> str | None:
        hit = self._cache.get(key)
        if hit is None:
            return None
        expires_at, text = hit
        if expires_at < time.monotonic():
            del self._cache[key]
            return None
        return text

    def _remember(self, key: str, text: str) -> None:
        now = time.monotonic()
        while self._cache:
            expires_at, _ = next(iter(self._cache.values()))
            if expires_at >= now:
                break
            self._cache.popitem(last=False)
        self._cache[key] = (now + self.cache_ttl_seconds, text)
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_max_entries:
            self._cache.popitem(last=False)

    async def _call(self, summary: dict[str, Any]) -> str:
        try:
            return await asyncio.wait_for(self.client.annotate(summary), timeout=self.timeout_seconds)
        except TimeoutError as exc:
            raise AnnotationTimeout(f"rationale generator exceeded {self.timeout_seconds}s") from exc

    async def annotate_one(self, summary: dict[str, Any], fallback: str, semaphore: asyncio.Semaphore) -> str:
        key = _cache_key(summary)
        cached = self._cached(key)
        if cached is not None:
            return cached

        async with semaphore:
            try:
                text = await self._call(summary)
            except AnnotationTimeout as exc:
                logger.warning("rationale timed out; using fallback: segment=%s error=%s", summary.get("segment"), exc)
                return fallback
            except (httpx.HTTPError, ValueError, KeyError, IndexError, AttributeError) as exc:
                logger.warning("rationale failed; using fallback: segment=%s error=%s", summary.get("segment"), exc)
                return fallback

        self._remember(key, text)
        return text

    async def annotate_picks(
        self,
        picks: list[P],
        summarize: Callable[[P], dict[str, Any]],
        fallback: str,
    ) -> list[P]:
        """Same picks, same order, each with a rationale. Never drops a pick."""
        if not picks:
            return []
        semaphore = asyncio.Semaphore(self.max_concurrency)
        texts = await asyncio.gather(*(self.annotate_one(summarize(p), fallback, semaphore) for p in picks))
        return [p.with_rationale(text) for p, text in zip(picks, texts)]


annotator = RationaleAnnotator()
