#!/usr/bin/env python3
"""
Backend API Testing Suite for the Simple Icons render service
Tests all endpoints against a renderer wired to stubbed remote sources
"""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

import server
from icons_color_algorithm import decode_data_uri
from icons_index import IconAliases, IconIndex, IconRecord
from icons_render import IconRenderer
from icons_sources import IconFetcher, MirrorSource
from icons_sv_storage import IconCache

MIRROR = "https://mirror.test/simple"

SVG = (
    '<svg role="img" viewBox="0 0 24 24" xmlns="http://www.w3.org/2000/svg">'
    '<title>Icon</title><path fill="#4285F4" d="M1 1h22v22H1z"/></svg>'
)
KNOWN_SLUGS = {"github", "google", "nodedotjs"}


@pytest.fixture
def calls():
    return []


@pytest.fixture
def renderer(calls):
    def handler(request):
        calls.append(str(request.url))
        slug = request.url.path.rsplit("/", 1)[-1][:-len(".svg")]
        if slug in KNOWN_SLUGS:
            return httpx.Response(200, text=SVG)
        return httpx.Response(404, text="Not Found")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    index = IconIndex(records=[
        IconRecord(title="GitHub", hex="181717", aliases=IconAliases(aka=["GH"])),
        IconRecord(title="Google", hex="4285F4"),
        IconRecord(title="Node.js", slug="nodedotjs", hex="5FA04E"),
    ])
    fetcher = IconFetcher(client, [MirrorSource(MIRROR)], cache=IconCache())
    yield IconRenderer(fetcher, index=index)
    asyncio.run(client.aclose())


@pytest.fixture
def api(renderer):
    server.app.dependency_overrides[server.get_renderer] = lambda: renderer
    session = server.PreviewSession()
    server.app.dependency_overrides[server.get_preview_session] = lambda: session
    yield TestClient(server.app)
    server.app.dependency_overrides.clear()


class TestHealth:
    def test_root(self, api):
        response = api.get("/api/")
        assert response.status_code == 200
        assert "message" in response.json()

    def test_health(self, api):
        data = api.get("/api/health").json()
        assert data["status"] == "ok"
        assert data["index"] == "loaded"
        assert data["icons"] == 3
        assert data["cached"] == 0


class TestRenderEndpoints:
    def test_render_get(self, api, calls):
        response = api.get("/api/render", params={"icon_name": "Google", "color": "#FF0000", "size": "32"})
        assert response.status_code == 200
        svg = decode_data_uri(response.json()["result"])
        assert svg.count('fill="#FF0000"') == 1
        assert svg.count('width="32"') == 1
        assert calls == [f"{MIRROR}/google.svg"]

    def test_render_post_with_wrapped_values(self, api):
        payload = {
            "icon_name": {"value": "Node.js"},
            "color": {"value": {"hex": "#00FF00"}},
            "size": {"value": 20},
        }
        response = api.post("/api/render", json=payload)
        svg = decode_data_uri(response.json()["result"])
        assert 'fill="#00FF00"' in svg
        assert 'height="20"' in svg

    def test_empty_name_returns_empty_without_fetch(self, api, calls):
        response = api.get("/api/render", params={"icon_name": "", "color": "#000000", "size": "24"})
        assert response.json() == {"result": ""}
        assert calls == []

    def test_unknown_icon_returns_empty(self, api):
        response = api.get("/api/render", params={"icon_name": "Nope Nope"})
        assert response.status_code == 200
        assert response.json() == {"result": ""}

    def test_render_cached_miss_returns_placeholder(self, api):
        miss = api.get("/api/render/cached", params={"icon_name": "Node.js"}).json()["result"]
        assert "stroke-dasharray" in decode_data_uri(miss)

    def test_render_cached_hit_after_render(self, api):
        api.get("/api/render", params={"icon_name": "GitHub"})
        hit = api.get("/api/render/cached", params={"icon_name": "GitHub"}).json()["result"]
        assert 'fill="#000000"' in decode_data_uri(hit)


class TestIconLookup:
    def test_search(self, api):
        data = api.get("/api/icons", params={"q": "g"}).json()
        assert [item["title"] for item in data] == ["GitHub", "Google"]
        assert data[0]["slug"] == "github"

    def test_resolve_alias(self, api):
        data = api.get("/api/icons/resolve", params={"name": "gh"}).json()
        assert data == {"found": True, "name": "gh", "title": "GitHub", "slug": "github"}

    def test_resolve_missing(self, api):
        data = api.get("/api/icons/resolve", params={"name": "C++"}).json()
        assert data["found"] is False
        assert data["slug"] == "cplusplus"


class TestConfigSurface:
    def test_default_config(self, api):
        assert api.get("/api/config").json() == {"icon_name": "", "color": "#000000", "size": 24}

    def test_set_config_refreshes_preview(self, api):
        response = api.put("/api/config", json={"icon_name": " node.js ", "color": "#123456", "size": 48})
        data = response.json()
        assert data["config"] == {"icon_name": "node.js", "color": "#123456", "size": 48}
        assert data["message"] == "Node.js"
        assert 'width="48"' in decode_data_uri(data["result"])
        assert api.get("/api/config").json()["icon_name"] == "node.js"
        assert api.get("/api/preview").json()["result"] == data["result"]

    def test_missing_icon_message(self, api):
        data = api.put("/api/config", json={"icon_name": "Nope", "color": "#000000", "size": 24}).json()
        assert data["result"] == ""
        assert data["message"] == 'Icon "Nope" not found'

    def test_empty_name_message(self, api):
        data = api.put("/api/config", json={"icon_name": "", "color": "#000000", "size": 24}).json()
        assert data["message"] == "Enter an icon name to see preview"


class TestPreviewSupersession:
    @pytest.mark.asyncio
    async def test_later_config_wins_over_slower_earlier_one(self):
        """A slow render finishing after a newer config must not replace the preview"""
        gate = asyncio.Event()

        async def handler(request):
            if request.url.path.endswith("/github.svg"):
                await gate.wait()
            return httpx.Response(200, text=SVG)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = IconFetcher(client, [MirrorSource(MIRROR)], cache=IconCache())
            icon_renderer = IconRenderer(fetcher, index=IconIndex(records=[IconRecord(title="GitHub"), IconRecord(title="Google")]))
            session = server.PreviewSession()

            slow = asyncio.ensure_future(session.set_config(
                server.IconConfig(icon_name="GitHub", color="#111111", size=16), icon_renderer))
            for _ in range(5):
                await asyncio.sleep(0)
            fast = await session.set_config(server.IconConfig(icon_name="Google", color="#222222", size=32), icon_renderer)
            gate.set()
            await slow

        preview = session.preview()
        assert preview.config.icon_name == "Google"
        assert preview.message == "Google"
        assert preview.result == fast.result
        svg = decode_data_uri(preview.result)
        assert 'width="32"' in svg
        assert 'fill="#222222"' in svg


class TestServerEntryPoint:
    def test_main_runs_app_under_uvicorn(self, monkeypatch):
        captured = {}

        def fake_run(app, **kwargs):
            captured["app"] = app
            captured.update(kwargs)

        monkeypatch.setattr(server.uvicorn, "run", fake_run)
        server.main()

        assert captured["app"] is server.app
        assert captured["host"] == server.HOST
        assert captured["port"] == server.PORT
