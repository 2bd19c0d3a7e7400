"""
icons_sources.py
----------------
Remote SVG sources for Simple Icons and the fetcher that walks them in order.

Sources (default order):
- colour-aware CDN:   {base}/{slug}/{hex-without-#}   (pre-coloured markup)
- static npm asset:   {base}/{slug}.svg                (single path, no fill)
- static mirror:      {base}/{slug}.svg                (optional)

The first source that answers 2xx with a complete <svg> wins. Transport and
markup failures only move on to the next source.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Dict, List, Optional

import httpx

from icons_color_algorithm import color_for_url, is_valid_svg
from icons_sv_storage import IconCache, StoredIcon


class IconError(Exception):
    """Base class for icon pipeline failures."""


class NotFound(IconError):
    def __init__(self, slug: str, attempted: Optional[List[str]] = None):
        self.slug = slug
        self.attempted = attempted or []
        super().__init__(f"no source returned usable markup for '{slug}' (tried: {', '.join(self.attempted) or 'none'})")


class TransportError(IconError):
    def __init__(self, source: str, slug: str, reason: str):
        self.source = source
        self.slug = slug
        super().__init__(f"{source}: request for '{slug}' failed: {reason}")


class MalformedSource(IconError):
    def __init__(self, source: str, slug: str, reason: str = "incomplete svg"):
        self.source = source
        self.slug = slug
        super().__init__(f"{source}: markup for '{slug}' rejected: {reason}")


class IconSource:
    """One remote location addressed by slug. Subclasses only build the URL."""

    name = "source"
    color_aware = False
    single_path = False

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def url_for(self, slug: str, color: str) -> str:
        return f"{self.base_url}/{slug}.svg"

    async def fetch(self, client: httpx.AsyncClient, slug: str, color: str, timeout: float) -> StoredIcon:
        url = self.url_for(slug, color)
        try:
            # httpx timeouts are per phase; wait_for bounds the whole attempt
            response = await asyncio.wait_for(client.get(url, timeout=timeout), timeout)
        except asyncio.TimeoutError as exc:
            raise TransportError(self.name, slug, f"no response within {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise TransportError(self.name, slug, f"{type(exc).__name__}: {exc}") from exc
        if not response.is_success:
            raise TransportError(self.name, slug, f"HTTP {response.status_code}")
        markup = response.text
        if not is_valid_svg(markup):
            raise MalformedSource(self.name, slug)
        return StoredIcon(
            markup=markup,
            source=self.name,
            color=color if self.color_aware else None,
            single_path=self.single_path,
        )


class ColorAwareSource(IconSource):
    name = "cdn"
    color_aware = True

    def url_for(self, slug: str, color: str) -> str:
        return f"{self.base_url}/{slug}/{color_for_url(color)}"


class StaticPackageSource(IconSource):
    name = "package"
    single_path = True


class MirrorSource(IconSource):
    name = "mirror"


def build_sources(
    cdn_url: Optional[str],
    static_url: Optional[str],
    mirror_url: Optional[str] = None,
) -> List[IconSource]:
    """Ordered source list; empty URLs are skipped."""
    sources: List[IconSource] = []
    if cdn_url:
        sources.append(ColorAwareSource(cdn_url))
    if static_url:
        sources.append(StaticPackageSource(static_url))
    if mirror_url:
        sources.append(MirrorSource(mirror_url))
    return sources


class IconFetcher:
    """
    Fetch icon markup with an in-memory cache and ordered fallback.

    Cache entries are written under both the user-supplied name and the
    resolved slug. Concurrent fetches of the same slug share one task.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        sources: List[IconSource],
        cache: Optional[IconCache] = None,
        timeout: float = 10.0,
    ):
        self.client = client
        self.sources = sources
        self.cache = cache if cache is not None else IconCache()
        self.timeout = timeout
        self._inflight: Dict[str, asyncio.Future] = {}

    def cached(self, name: str, slug: str) -> Optional[StoredIcon]:
        hit = self.cache.lookup(name, slug)
        if hit is not None:
            logging.debug("[fetch] cache hit name=%s slug=%s", name, slug)
        return hit

    async def fetch(self, name: str, slug: str, color: str) -> StoredIcon:
        """Return markup for slug, raising NotFound when every source fails."""
        hit = self.cached(name, slug)
        if hit is not None:
            return hit

        pending = self._inflight.get(slug)
        # a future left behind by a closed loop cannot be awaited here
        if pending is None or pending.get_loop() is not asyncio.get_running_loop():
            pending = asyncio.ensure_future(self._fetch_remote(slug, color))
            self._inflight[slug] = pending
            pending.add_done_callback(lambda done, key=slug: self._forget(key, done))
        icon = await asyncio.shield(pending)

        self.cache.put(name, icon)
        self.cache.put(slug, icon)
        return icon

    def _forget(self, slug: str, done: asyncio.Future) -> None:
        if self._inflight.get(slug) is done:
            del self._inflight[slug]

    async def _fetch_remote(self, slug: str, color: str) -> StoredIcon:
        attempted: List[str] = []
        for source in self.sources:
            attempted.append(source.name)
            try:
                icon = await source.fetch(self.client, slug, color, self.timeout)
            except (TransportError, MalformedSource) as exc:
                logging.warning("[fetch] %s", exc)
                continue
            logging.info("[fetch] %s served '%s'", source.name, slug)
            return icon
        logging.info("[fetch] '%s' not found after %d source(s)", slug, len(attempted))
        raise NotFound(slug, attempted)
