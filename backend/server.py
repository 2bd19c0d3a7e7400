from fastapi import FastAPI, APIRouter, Depends, Query
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path
from pydantic import BaseModel
from typing import List, Optional, Any
from datetime import datetime, timezone

import httpx
import uvicorn

from icons_index import IconIndex
from icons_render import IconRenderer, DEFAULT_SIZE, MAX_SIZE, EMPTY_RESULT
from icons_sources import IconFetcher, build_sources
from icons_sv_storage import IconCache

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


def _env_float(name: str, default: float) -> float:
    try:
        value = float(os.environ.get(name, default))
        return value if value > 0 else default
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        value = int(os.environ.get(name, default))
        return value if value > 0 else default
    except (TypeError, ValueError):
        return default


SIMPLE_ICONS_VERSION = os.environ.get('SIMPLE_ICONS_VERSION', 'latest')
ICON_CDN_URL = os.environ.get('ICON_CDN_URL', 'https://cdn.simpleicons.org')
ICON_STATIC_URL = os.environ.get(
    'ICON_STATIC_URL',
    f'https://cdn.jsdelivr.net/npm/simple-icons@{SIMPLE_ICONS_VERSION}/icons',
)
ICON_MIRROR_URL = os.environ.get('ICON_MIRROR_URL', 'https://xaviigna.github.io/glide-simpleicons/assets/simple')
ICON_INDEX_URL = os.environ.get(
    'ICON_INDEX_URL',
    'https://raw.githubusercontent.com/simple-icons/simple-icons/develop/data/simple-icons.json',
)
ICON_FETCH_TIMEOUT = _env_float('ICON_FETCH_TIMEOUT', 10.0)
ICON_DEFAULT_SIZE = _env_int('ICON_DEFAULT_SIZE', DEFAULT_SIZE)
ICON_MAX_SIZE = _env_int('ICON_MAX_SIZE', MAX_SIZE)
ICON_INDEX_RETRY = _env_float('ICON_INDEX_RETRY', 60.0)
HOST = os.environ.get('HOST', '0.0.0.0')
PORT = _env_int('PORT', 8001)

http_client: Optional[httpx.AsyncClient] = None
renderer: Optional[IconRenderer] = None

# Create the main app without a prefix
app = FastAPI()

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")


def build_renderer(client: httpx.AsyncClient, cache: Optional[IconCache] = None) -> IconRenderer:
    """Wire index, sources and cache from the environment settings."""
    sources = build_sources(ICON_CDN_URL, ICON_STATIC_URL, ICON_MIRROR_URL)
    fetcher = IconFetcher(client, sources, cache=cache, timeout=ICON_FETCH_TIMEOUT)
    index = IconIndex(url=ICON_INDEX_URL, client=client, timeout=ICON_FETCH_TIMEOUT, retry_interval=ICON_INDEX_RETRY)
    return IconRenderer(fetcher, index=index, default_size=ICON_DEFAULT_SIZE, max_size=ICON_MAX_SIZE)


def get_renderer() -> IconRenderer:
    global http_client, renderer
    if renderer is None:
        http_client = httpx.AsyncClient(follow_redirects=True)
        renderer = build_renderer(http_client)
    return renderer


# Define Models
class RenderRequest(BaseModel):
    icon_name: Any = None
    color: Any = None
    size: Any = None


class RenderResult(BaseModel):
    result: str


class IconSummary(BaseModel):
    title: str
    slug: str
    hex: Optional[str] = None


class ResolveResult(BaseModel):
    found: bool
    name: str
    title: Optional[str] = None
    slug: str


class IconConfig(BaseModel):
    icon_name: str = ""
    color: str = "#000000"
    size: int = DEFAULT_SIZE


class PreviewResult(BaseModel):
    config: IconConfig
    result: str
    message: str


class PreviewSession:
    """
    Config + preview state behind the configuration surface.

    Every config change bumps the generation; a render only lands in the
    preview if no newer change arrived while it was in flight.
    """

    def __init__(self):
        self.config = IconConfig()
        self.generation = 0
        self.result = EMPTY_RESULT
        self.message = "Enter an icon name to see preview"

    def get_config(self) -> IconConfig:
        return self.config

    async def set_config(self, config: IconConfig, icon_renderer: IconRenderer) -> PreviewResult:
        self.generation += 1
        generation = self.generation
        normalized = icon_renderer.normalize(config.icon_name, config.color, config.size)
        self.config = IconConfig(icon_name=normalized.icon_name, color=normalized.color, size=normalized.size)
        result = await icon_renderer.render(normalized.icon_name, normalized.color, normalized.size)
        if generation == self.generation:
            self.result = result
            self.message = self._message(normalized.icon_name, result, icon_renderer)
        return self.preview()

    @staticmethod
    def _message(icon_name: str, result: str, icon_renderer: IconRenderer) -> str:
        if not icon_name:
            return "Enter an icon name to see preview"
        if result:
            record = icon_renderer.index.resolve(icon_name) if icon_renderer.index is not None else None
            return record.title if record is not None else icon_name
        return f'Icon "{icon_name}" not found'

    def preview(self) -> PreviewResult:
        return PreviewResult(config=self.config, result=self.result, message=self.message)


preview_session = PreviewSession()


def get_preview_session() -> PreviewSession:
    return preview_session


@api_router.get("/")
async def root():
    return {"message": "Simple Icons render API"}


@api_router.get("/health")
async def health(icon_renderer: IconRenderer = Depends(get_renderer)):
    index = icon_renderer.index
    status = {
        "status": "ok",
        "index": "loaded" if index is not None and index.loaded else "empty",
        "icons": len(index) if index is not None else 0,
        "cached": len(icon_renderer.fetcher.cache),
        "time": datetime.now(timezone.utc).isoformat(),
    }
    return status


@api_router.get("/render", response_model=RenderResult)
async def render_icon_get(
    icon_name: str = "",
    color: str = "#000000",
    size: str = str(DEFAULT_SIZE),
    icon_renderer: IconRenderer = Depends(get_renderer),
):
    """Render an icon to a data URI; an empty result means nothing could be rendered."""
    result = await icon_renderer.render(icon_name, color, size)
    return RenderResult(result=result)


@api_router.post("/render", response_model=RenderResult)
async def render_icon_post(request: RenderRequest, icon_renderer: IconRenderer = Depends(get_renderer)):
    """Same as GET but accepts host-shaped values, e.g. {"icon_name": {"value": "GitHub"}}."""
    result = await icon_renderer.render(request.icon_name, request.color, request.size)
    return RenderResult(result=result)


@api_router.get("/render/cached", response_model=RenderResult)
async def render_icon_cached(
    icon_name: str = "",
    color: str = "#000000",
    size: str = str(DEFAULT_SIZE),
    icon_renderer: IconRenderer = Depends(get_renderer),
):
    """Answer from cache immediately; a miss returns the loading placeholder and warms the cache."""
    return RenderResult(result=icon_renderer.render_cached(icon_name, color, size))


@api_router.get("/icons", response_model=List[IconSummary])
async def list_icons(
    q: str = "",
    limit: int = Query(20, ge=1, le=200),
    icon_renderer: IconRenderer = Depends(get_renderer),
):
    index = icon_renderer.index
    if index is None:
        return []
    await index.ensure_loaded()
    return [IconSummary(title=r.title, slug=r.effective_slug, hex=r.hex) for r in index.search(q, limit)]


@api_router.get("/icons/resolve", response_model=ResolveResult)
async def resolve_icon_name(name: str, icon_renderer: IconRenderer = Depends(get_renderer)):
    index = icon_renderer.index
    if index is not None:
        await index.ensure_loaded()
    record = index.resolve(name) if index is not None else None
    if record is None:
        return ResolveResult(found=False, name=name, slug=icon_renderer.resolve_slug(name))
    return ResolveResult(found=True, name=name, title=record.title, slug=record.effective_slug)


@api_router.get("/config", response_model=IconConfig)
async def get_config(session: PreviewSession = Depends(get_preview_session)):
    return session.get_config()


@api_router.put("/config", response_model=PreviewResult)
async def set_config(
    config: IconConfig,
    session: PreviewSession = Depends(get_preview_session),
    icon_renderer: IconRenderer = Depends(get_renderer),
):
    return await session.set_config(config, icon_renderer)


@api_router.get("/preview", response_model=PreviewResult)
async def get_preview(session: PreviewSession = Depends(get_preview_session)):
    return session.preview()


# Include the router in the main app
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Configure logging
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def startup_icon_index():
    icon_renderer = get_renderer()
    if icon_renderer.index is not None:
        await icon_renderer.index.ensure_loaded()
        if icon_renderer.index.loaded:
            logging.info("[icons] index ready with %d icons", len(icon_renderer.index))
        else:
            logging.warning("[icons] index unavailable; resolving names by slug only")


@app.on_event("shutdown")
async def shutdown_http_client():
    if renderer is not None:
        await renderer.drain()
    if http_client is not None:
        await http_client.aclose()


def main():
    """Run the API under uvicorn, e.g. `simple-icons-render` or `python server.py`."""
    uvicorn.run(app, host=HOST, port=PORT, log_level=os.environ.get('LOG_LEVEL', 'INFO').lower())


if __name__ == "__main__":
    main()
