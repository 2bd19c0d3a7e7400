"""
icons_render.py
---------------
Public render entry point: raw parameters in, data URI (or "") out.

Inputs may be plain values or host "column" wrappers exposing ``value``
(attribute or dict key). Colour may additionally be nested as ``hex``,
``value.hex``, ``value.color`` or ``color``.
"""

from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from icons_color_algorithm import (
    DEFAULT_COLOR,
    apply_style,
    encode_data_uri,
    normalize_color,
    rebuild_from_path,
)
from icons_index import IconIndex, title_to_slug
from icons_sources import IconError, IconFetcher, NotFound
from icons_sv_storage import StoredIcon, get_placeholder

DEFAULT_SIZE = 24
MAX_SIZE = 1024
MISS_TTL = 300.0

# Every failure renders as this
EMPTY_RESULT = ""


@dataclass(frozen=True)
class NormalizedRequest:
    icon_name: str
    color: str
    size: int


def _field(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def unwrap_value(raw: Any) -> Any:
    """Unwrap a ``{value: ...}`` column wrapper; plain values pass through."""
    if raw is None or isinstance(raw, (str, int, float, bool)):
        return raw
    value = _field(raw, "value")
    return value if value is not None else raw


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, tuple)):
        return ""
    return str(value).strip()


def _color_text(raw: Any) -> str:
    if raw is None or isinstance(raw, str):
        return _text(raw)
    candidates = (
        _field(raw, "hex"),
        _field(_field(raw, "value"), "hex"),
        _field(_field(raw, "value"), "color"),
        _field(raw, "color"),
        _field(raw, "value"),
    )
    for candidate in candidates:
        if isinstance(candidate, (str, int)) and not isinstance(candidate, bool):
            text = _text(candidate)
            if text:
                return text
    return _text(raw) if isinstance(raw, (int, float)) else ""


def parse_size(raw: Any, default: int = DEFAULT_SIZE, maximum: int = MAX_SIZE) -> int:
    """Positive integer pixels; absent or unparseable input gives the default."""
    value = unwrap_value(raw)
    if value is None or isinstance(value, bool):
        return default
    try:
        size = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return default
    if size <= 0:
        return default
    return min(size, maximum)


def normalize_request(
    icon_raw: Any,
    color_raw: Any,
    size_raw: Any,
    default_size: int = DEFAULT_SIZE,
    max_size: int = MAX_SIZE,
) -> NormalizedRequest:
    return NormalizedRequest(
        icon_name=_text(unwrap_value(icon_raw)),
        color=normalize_color(_color_text(color_raw) or DEFAULT_COLOR),
        size=parse_size(size_raw, default_size, max_size),
    )


class IconRenderer:
    """Compose resolve -> fetch -> style -> encode. Never raises from render()."""

    def __init__(
        self,
        fetcher: IconFetcher,
        index: Optional[IconIndex] = None,
        default_size: int = DEFAULT_SIZE,
        max_size: int = MAX_SIZE,
        miss_ttl: float = MISS_TTL,
    ):
        self.fetcher = fetcher
        self.index = index
        self.default_size = default_size
        self.max_size = max_size
        self.miss_ttl = miss_ttl
        self._background: Set[asyncio.Task] = set()
        # slug -> monotonic time of the last render that found nothing
        self._misses: Dict[str, float] = {}

    def normalize(self, icon_raw: Any, color_raw: Any, size_raw: Any) -> NormalizedRequest:
        return normalize_request(icon_raw, color_raw, size_raw, self.default_size, self.max_size)

    def resolve_slug(self, name: str) -> str:
        record = self.index.resolve(name) if self.index is not None else None
        if record is not None:
            return record.effective_slug
        return title_to_slug(name)

    def style(self, icon: StoredIcon, color: str, size: int) -> Optional[str]:
        if icon.single_path:
            return rebuild_from_path(icon.markup, color, size)
        return apply_style(icon.markup, color, size, color_applied=icon.color == color)

    async def render(self, icon_raw: Any, color_raw: Any, size_raw: Any) -> str:
        try:
            request = self.normalize(icon_raw, color_raw, size_raw)
        except Exception as exc:  # pragma: no cover - normalisation is total
            logging.error(f"[render] could not normalise request: {exc}")
            return EMPTY_RESULT
        if not request.icon_name:
            return EMPTY_RESULT
        try:
            if self.index is not None:
                await self.index.ensure_loaded()
            slug = self.resolve_slug(request.icon_name)
            if not slug:
                logging.info("[render] '%s' has no usable slug", request.icon_name)
                return EMPTY_RESULT
            icon = await self.fetcher.fetch(request.icon_name, slug, request.color)
            svg = self.style(icon, request.color, request.size)
            if svg is None:
                logging.warning("[render] %s markup for '%s' has no path data", icon.source, slug)
                self._misses[slug] = time.monotonic()
                return EMPTY_RESULT
            self._misses.pop(slug, None)
            return encode_data_uri(svg)
        except NotFound as exc:
            self._misses[exc.slug] = time.monotonic()
            logging.info("[render] %s -> empty result: %s", request.icon_name, exc)
            return EMPTY_RESULT
        except (IconError, ValueError) as exc:
            logging.info("[render] %s -> empty result: %s", request.icon_name, exc)
            return EMPTY_RESULT
        except Exception as exc:
            logging.error(f"[render] unexpected failure for {request.icon_name}: {exc}")
            return EMPTY_RESULT

    def render_cached(self, icon_raw: Any, color_raw: Any, size_raw: Any) -> str:
        """
        Best-effort synchronous render from cache only.

        On a miss returns the loading placeholder and, if an event loop is
        running, schedules render() in the background to fill the cache.
        A name whose last render found nothing within miss_ttl gets the
        error placeholder and no new fetch.
        """
        request = self.normalize(icon_raw, color_raw, size_raw)
        if not request.icon_name:
            return EMPTY_RESULT
        slug = self.resolve_slug(request.icon_name)
        icon = self.fetcher.cached(request.icon_name, slug) if slug else None
        if icon is not None:
            try:
                svg = self.style(icon, request.color, request.size)
            except ValueError as exc:
                logging.warning(f"[render] cached markup for {slug} unusable: {exc}")
                svg = None
            if svg is not None:
                return encode_data_uri(svg)
            return self._placeholder("error", request.size)

        if slug and self._recent_miss(slug):
            return self._placeholder("error", request.size)
        if slug:
            self._schedule(request)
        return self._placeholder("loading", request.size)

    def _recent_miss(self, slug: str) -> bool:
        missed_at = self._misses.get(slug)
        return missed_at is not None and time.monotonic() - missed_at < self.miss_ttl

    def _placeholder(self, kind: str, size: int) -> str:
        return encode_data_uri(apply_style(get_placeholder(kind), DEFAULT_COLOR, size, color_applied=True))

    def _schedule(self, request: NormalizedRequest) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logging.debug("[render] no running loop; skipping background fetch for %s", request.icon_name)
            return
        task = loop.create_task(self.render(request.icon_name, request.color, request.size))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for scheduled background fetches (used on shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
