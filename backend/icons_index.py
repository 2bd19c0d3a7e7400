"""
icons_index.py
--------------
Simple Icons corpus: title -> slug conversion and name resolution.

The corpus feed is a JSON array of records shaped like
``{"title": "...", "slug": "...", "aliases": {"aka": [...]}}``.
It is fetched once per process and kept for the rest of the run.
"""

from __future__ import annotations
import asyncio
import logging
import re
import time
import unicodedata
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

# Characters the corpus spells out before stripping non-alphanumerics
TITLE_TO_SLUG_REPLACEMENTS: Dict[str, str] = {
    "+": "plus",
    ".": "dot",
    "&": "and",
    "đ": "d",
    "ħ": "h",
    "ı": "i",
    "ĸ": "k",
    "ŀ": "l",
    "ł": "l",
    "ß": "ss",
    "ŧ": "t",
    "ø": "o",
}

TITLE_TO_SLUG_CHARS_RE = re.compile(
    "[" + re.escape("".join(TITLE_TO_SLUG_REPLACEMENTS.keys())) + "]"
)
TITLE_TO_SLUG_RANGE_RE = re.compile(r"[^a-z0-9]")


def title_to_slug(title: str) -> str:
    """Map a display title to the corpus slug, e.g. ``"Node.js" -> "nodedotjs"``."""
    lowered = title.lower()
    replaced = TITLE_TO_SLUG_CHARS_RE.sub(
        lambda m: TITLE_TO_SLUG_REPLACEMENTS.get(m.group(0), m.group(0)), lowered
    )
    decomposed = unicodedata.normalize("NFD", replaced)
    return TITLE_TO_SLUG_RANGE_RE.sub("", decomposed)


class IconAliases(BaseModel):
    aka: List[str] = []


class IconRecord(BaseModel):
    title: str
    slug: Optional[str] = None
    hex: Optional[str] = None
    aliases: Optional[IconAliases] = None

    @property
    def effective_slug(self) -> str:
        return self.slug or title_to_slug(self.title)


def resolve_icon(records: List[IconRecord], name: str) -> Optional[IconRecord]:
    """
    Find the best matching record for free-form input.

    Lookup order: exact title, then slug, then alias (``aliases.aka``).
    All comparisons are case-insensitive. Returns None when nothing matches.
    """
    if not records or not name:
        return None
    wanted = name.strip().lower()
    if not wanted:
        return None

    for record in records:
        if record.title.lower() == wanted:
            return record

    wanted_slug = title_to_slug(wanted)
    if wanted_slug:
        for record in records:
            if record.effective_slug == wanted_slug:
                return record

    for record in records:
        if record.aliases and any(alias.lower() == wanted for alias in record.aliases.aka):
            return record

    return None


def _parse_records(payload: Any) -> List[IconRecord]:
    # Older corpus releases wrap the array as {"icons": [...]}
    if isinstance(payload, dict):
        payload = payload.get("icons", [])
    if not isinstance(payload, list):
        return []
    records: List[IconRecord] = []
    for entry in payload:
        if not isinstance(entry, dict) or not isinstance(entry.get("title"), str):
            continue
        aliases = entry.get("aliases")
        aka = aliases.get("aka") if isinstance(aliases, dict) else None
        records.append(IconRecord(
            title=entry["title"],
            slug=entry.get("slug") if isinstance(entry.get("slug"), str) else None,
            hex=entry.get("hex") if isinstance(entry.get("hex"), str) else None,
            aliases=IconAliases(aka=[a for a in aka if isinstance(a, str)]) if isinstance(aka, list) else None,
        ))
    return records


class IconIndex:
    """Process-wide icon corpus, loaded lazily and at most once successfully."""

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        records: Optional[List[IconRecord]] = None,
        timeout: float = 10.0,
        retry_interval: float = 60.0,
    ):
        self.url = url
        self.client = client
        self.timeout = timeout
        self.retry_interval = retry_interval
        self._failed_at: Optional[float] = None
        self._records: List[IconRecord] = list(records or [])
        self._loaded = records is not None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def records(self) -> List[IconRecord]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    async def ensure_loaded(self) -> List[IconRecord]:
        """
        Fetch the corpus feed on first call; failures degrade to an empty index.

        After a failed load the feed is not requested again until
        retry_interval seconds have passed.
        """
        if self._loaded or self._recently_failed():
            return self._records
        async with self._lock:
            # another caller may have finished (or failed) while we waited
            if self._loaded or self._recently_failed():
                return self._records
            if not self.url or self.client is None:
                return self._records
            try:
                response = await self.client.get(self.url, timeout=self.timeout)
                response.raise_for_status()
                self._records = _parse_records(response.json())
                self._loaded = True
                self._failed_at = None
                logging.info("[index] loaded %d icons from %s", len(self._records), self.url)
            except (httpx.HTTPError, ValueError) as exc:
                self._failed_at = time.monotonic()
                logging.error(f"[index] failed to load icon corpus from {self.url}: {exc}")
        return self._records

    def _recently_failed(self) -> bool:
        if self._failed_at is None:
            return False
        return time.monotonic() - self._failed_at < self.retry_interval

    def resolve(self, name: str) -> Optional[IconRecord]:
        return resolve_icon(self._records, name)

    def search(self, query: str, limit: int = 20) -> List[IconRecord]:
        """Titles starting with the query first, then titles containing it."""
        needle = (query or "").strip().lower()
        if not needle:
            return self._records[:limit]
        prefix = [r for r in self._records if r.title.lower().startswith(needle)]
        contains = [
            r for r in self._records
            if needle in r.title.lower() and not r.title.lower().startswith(needle)
        ]
        return (prefix + contains)[:limit]
