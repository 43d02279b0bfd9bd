"""
Template store for prompt-guide artifacts.

Templates are opaque text documents fetched by id (a relative path) from a
source: the raw-file endpoint of a prompt repository, or a local directory.
Fetched text is cached process-wide, keyed by (source, version, path), with
TTL expiry and bounded LRU eviction. The cache is injected, never a hidden
singleton, so tests can use an isolated instance.
"""

from __future__ import annotations

import asyncio
import re
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple

import httpx

from clearbound.core.config import Settings
from clearbound.core.errors import (TemplateFetchError,
                                    TemplateSourceNotConfiguredError)
from clearbound.core.logging_config import LoggingConfig
from clearbound.core.metrics import template_cache_lookups_total

logger = LoggingConfig.get_logger(__name__)

RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})
_SAFE_REF = re.compile(r"^[A-Za-z0-9._\-/]+$")

CacheKey = Tuple[str, str, str]


def assert_safe_ref(ref: str) -> str:
    r = (ref or "").strip()
    if not r or not _SAFE_REF.match(r) or ".." in r:
        raise ValueError(f"invalid template ref: {ref!r}")
    return r


def assert_safe_path(template_id: str) -> str:
    p = (template_id or "").strip()
    if not p or ".." in p or p.startswith(("/", "\\")) or re.search(r"\s", p):
        raise TemplateFetchError(template_id=str(template_id), code="TEMPLATE_PATH_INVALID")
    return p


@dataclass
class FetchedTemplate:
    text: str
    etag: Optional[str] = None
    not_modified: bool = False


@dataclass
class CacheEntry:
    text: str
    fetched_at: float
    etag: Optional[str] = None


class TemplateSource(ABC):
    """Where template text comes from"""

    name: str = "source"

    @property
    @abstractmethod
    def version(self) -> str:
        """Version label used in cache keys (branch, tag, commit, or directory mtime tag)"""

    @abstractmethod
    async def fetch(self, template_id: str, etag: Optional[str] = None) -> FetchedTemplate:
        """Fetch one template, raising TemplateFetchError on failure"""


class GitHubRawTemplateSource(TemplateSource):
    """Fetches templates from raw.githubusercontent.com/{repo}/{ref}/{path}"""

    BASE_URL = "https://raw.githubusercontent.com"

    def __init__(
        self,
        repo: str,
        ref: str = "main",
        timeout: float = 4.5,
        max_bytes: int = 200_000,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not repo or "/" not in repo:
            raise ValueError("prompts repository must look like 'owner/name'")
        self.repo = repo.strip()
        self.ref = assert_safe_ref(ref)
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.name = f"github:{self.repo}"
        self._client = client

    @property
    def version(self) -> str:
        return self.ref

    def url_for(self, template_id: str) -> str:
        return f"{self.BASE_URL}/{self.repo}/{self.ref}/{template_id}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def fetch(self, template_id: str, etag: Optional[str] = None) -> FetchedTemplate:
        headers = {"If-None-Match": etag} if etag else {}
        try:
            response = await self._get_client().get(
                self.url_for(template_id), headers=headers, timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise TemplateFetchError(template_id, code="FETCH_TIMEOUT") from e
        except httpx.HTTPError as e:
            raise TemplateFetchError(template_id) from e

        if response.status_code == 304 and etag:
            return FetchedTemplate(text="", etag=etag, not_modified=True)
        if response.status_code >= 400:
            raise TemplateFetchError(template_id, status=response.status_code)
        if len(response.content) > self.max_bytes:
            raise TemplateFetchError(template_id, status=response.status_code, code="TEMPLATE_TOO_LARGE")

        return FetchedTemplate(text=response.text, etag=response.headers.get("etag"))

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class LocalTemplateSource(TemplateSource):
    """Reads templates from a directory on disk"""

    def __init__(self, root: Path, version: str = "local"):
        self.root = Path(root)
        self._version = version
        self.name = f"local:{self.root}"

    @property
    def version(self) -> str:
        return self._version

    async def fetch(self, template_id: str, etag: Optional[str] = None) -> FetchedTemplate:
        path = self.root / template_id
        if not path.is_file():
            raise TemplateFetchError(template_id, status=404)
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return FetchedTemplate(text=text)


class TemplateCache:
    """
    TTL + LRU cache of template text.

    Expired entries are reported as absent by `get` but stay available to
    `peek` for ETag revalidation and stale-on-error serving until evicted.
    Concurrent writers for the same key store equivalent values, so no lock
    is taken.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def now(self) -> float:
        return self._clock()

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.now() - entry.fetched_at >= self.ttl_seconds:
            return None
        self._entries.move_to_end(key)
        return entry

    def peek(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def put(self, key: CacheKey, text: str, etag: Optional[str] = None) -> CacheEntry:
        entry = CacheEntry(text=text, fetched_at=self.now(), etag=etag)
        self._entries[key] = entry
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Template cache eviction", extra={"template_id": evicted[2]})
        return entry

    def clear(self):
        self._entries.clear()


class TemplateStore:
    """Cached, retried access to a TemplateSource"""

    def __init__(
        self,
        source: TemplateSource,
        cache: Optional[TemplateCache] = None,
        retry_backoff_seconds: float = 0.12,
    ):
        self.source = source
        self.cache = cache if cache is not None else TemplateCache()
        self.retry_backoff_seconds = retry_backoff_seconds

    def cache_key(self, template_id: str) -> CacheKey:
        return (self.source.name, self.source.version, template_id)

    @staticmethod
    def _is_transient(error: TemplateFetchError) -> bool:
        return error.code == "FETCH_TIMEOUT" or error.status in RETRYABLE_STATUSES

    async def _fetch_with_retry(self, template_id: str, etag: Optional[str]) -> FetchedTemplate:
        try:
            return await self.source.fetch(template_id, etag=etag)
        except TemplateFetchError as e:
            if not self._is_transient(e):
                raise
            logger.warning(
                "Transient template fetch failure, retrying once",
                extra={"template_id": template_id, "status": e.status, "error_code": e.code}
            )
        await asyncio.sleep(self.retry_backoff_seconds)
        return await self.source.fetch(template_id, etag=etag)

    async def fetch(self, template_id: str) -> str:
        """
        Get template text by id

        Returns cached text while fresh; otherwise refetches (conditionally
        when an ETag is known). If the refetch fails and an expired copy is
        still cached, the stale copy is served.
        """
        template_id = assert_safe_path(template_id)
        key = self.cache_key(template_id)

        entry = self.cache.get(key)
        if entry is not None:
            template_cache_lookups_total.labels("hit").inc()
            return entry.text

        previous = self.cache.peek(key)
        try:
            fetched = await self._fetch_with_retry(template_id, previous.etag if previous else None)
        except TemplateFetchError as e:
            if previous is not None and previous.text:
                template_cache_lookups_total.labels("stale").inc()
                logger.warning(
                    "Serving stale template after fetch failure",
                    extra={"template_id": template_id, "status": e.status}
                )
                return previous.text
            template_cache_lookups_total.labels("error").inc()
            raise

        if fetched.not_modified and previous is not None:
            template_cache_lookups_total.labels("revalidated").inc()
            self.cache.put(key, previous.text, etag=previous.etag)
            return previous.text

        if not fetched.text.strip():
            template_cache_lookups_total.labels("error").inc()
            raise TemplateFetchError(template_id, code="TEMPLATE_EMPTY")

        template_cache_lookups_total.labels("miss").inc()
        self.cache.put(key, fetched.text, etag=fetched.etag)
        return fetched.text

    async def fetch_many(self, template_ids: Iterable[str]) -> Dict[str, str]:
        """Fetch several templates concurrently; all fetches settle before the first error is raised"""
        unique_ids = list(dict.fromkeys(template_ids))
        texts = await asyncio.gather(
            *(self.fetch(tid) for tid in unique_ids),
            return_exceptions=True,
        )
        for text in texts:
            if isinstance(text, BaseException):
                raise text
        return dict(zip(unique_ids, texts))


def build_template_source(settings: Settings) -> TemplateSource:
    """
    Create the configured template source

    Raises:
        TemplateSourceNotConfiguredError: github source without a usable PROMPTS_REPO
    """
    if settings.prompts_source == "local":
        return LocalTemplateSource(settings.prompts_local_path)
    if not settings.prompts_repo or "/" not in settings.prompts_repo:
        raise TemplateSourceNotConfiguredError("PROMPTS_REPO must be set to 'owner/name' when PROMPTS_SOURCE=github")
    return GitHubRawTemplateSource(
        repo=settings.prompts_repo,
        ref=settings.prompts_ref,
        timeout=settings.template_fetch_timeout_seconds,
        max_bytes=settings.template_max_bytes,
    )
