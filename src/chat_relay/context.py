"""Context augmentation from an external reference source."""

from __future__ import annotations

import logging
import re
import time
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from typing import Protocol
from urllib.parse import unquote, urlparse

import httpx

from chat_relay.errors import ContextRetrievalFailure
from chat_relay.types import ChatTurn

logger = logging.getLogger(__name__)

FALLBACK_CONTEXT = "No additional catalog context is available for this question."

_WORD = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
    {"a", "an", "and", "are", "do", "for", "have", "i", "in", "is", "me", "my", "of",
     "on", "or", "show", "the", "to", "what", "with", "you", "your"}
)


class ContextSource(Protocol):
    """Anything that can return reference snippets for a query."""

    async def fetch_snippets(self, query: str) -> list[str]: ...


class ContextAugmenter:
    """Turn the latest user utterance into one extra system turn."""

    def __init__(self, source: ContextSource, *, fallback: str = FALLBACK_CONTEXT) -> None:
        self._source = source
        self._fallback = fallback

    async def fetch_context(self, query: str) -> str:
        """Return ``Context: ...`` text for ``query``, or the fallback string."""
        try:
            found = await self._source.fetch_snippets(query)
        except Exception as exc:
            logger.warning("Context retrieval failed, using fallback: %s", exc)
            return self._fallback
        if not isinstance(found, (list, tuple)):
            found = []
        snippets = [s.strip() for s in found if isinstance(s, str) and s.strip()]
        if not snippets:
            logger.info("No context found for query %r", query)
            return self._fallback
        return "Context: " + "\n".join(snippets)

    async def augment(self, turns: Sequence[ChatTurn]) -> list[ChatTurn]:
        """Insert the context turn after the leading system turns.

        Conversations without a user turn are returned unchanged.
        """
        query = next((t.content for t in reversed(turns) if t.role == "user"), None)
        if query is None:
            return list(turns)
        context_turn = ChatTurn(role="system", content=await self.fetch_context(query))
        index = 0
        while index < len(turns) and turns[index].role == "system":
            index += 1
        return [*turns[:index], context_turn, *turns[index:]]


class SitemapContextSource:
    """Match product URLs from a sitemap against the words of a query.

    The sitemap is fetched lazily and cached for ``ttl_s`` seconds. Each
    matching URL becomes a snippet of the form ``"<title>: <url>"`` where
    the title is derived from the last path segment.
    """

    _SITEMAP_NS = "{http://www.sitemaps.org/schemas/sitemap/0.9}"

    def __init__(
        self,
        sitemap_url: str,
        *,
        api_key: str | None = None,
        max_snippets: int = 5,
        ttl_s: float = 3600.0,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        self._client = httpx.AsyncClient(timeout=timeout_s, headers=headers, transport=transport)
        self._sitemap_url = sitemap_url
        self._max_snippets = max_snippets
        self._ttl_s = ttl_s
        self._urls: list[str] = []
        self._fetched_at: float | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_snippets(self, query: str) -> list[str]:
        terms = _terms(query)
        if not terms:
            return []
        urls = await self._load_urls()
        scored: list[tuple[int, str]] = []
        for url in urls:
            words = _terms(_slug(url))
            score = len(terms & words)
            if score:
                scored.append((score, url))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [f"{_title(url)}: {url}" for _, url in scored[: self._max_snippets]]

    async def _load_urls(self) -> list[str]:
        now = time.monotonic()
        if self._fetched_at is not None and now - self._fetched_at < self._ttl_s:
            return self._urls
        try:
            response = await self._client.get(self._sitemap_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ContextRetrievalFailure(f"sitemap fetch failed: {exc}") from exc
        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as exc:
            raise ContextRetrievalFailure(f"sitemap is not valid XML: {exc}") from exc

        urls = [
            (loc.text or "").strip()
            for loc in root.iter()
            if loc.tag in (f"{self._SITEMAP_NS}loc", "loc")
        ]
        self._urls = [url for url in urls if url]
        self._fetched_at = now
        logger.info("Loaded %d URLs from sitemap %s", len(self._urls), self._sitemap_url)
        return self._urls


def _terms(text: str) -> set[str]:
    return {w for w in _WORD.findall(text.lower()) if w not in _STOPWORDS and len(w) > 1}


def _slug(url: str) -> str:
    path = unquote(urlparse(url).path)
    return path.rstrip("/").rsplit("/", 1)[-1]


def _title(url: str) -> str:
    slug = _slug(url)
    words = _WORD.findall(slug.lower())
    return " ".join(words).title() if words else url
