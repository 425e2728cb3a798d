"""Unit tests for lyrics/router.py."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from core.dependencies import get_posthog_client, get_resolver
from tests.factories import (
    KOREAN_QUERY,
    RESOLVE_BODY,
    FakeProvider,
    InMemoryStore,
    failing_provider,
    make_entry,
    make_resolver,
)
from tests.unit.conftest import override_deps


@pytest.fixture
def lrc_provider(synced_candidate):
    return FakeProvider("lrclib", candidate=synced_candidate)


async def _request(resolver, method, url, posthog_client=None, **kwargs):
    from main import app

    with override_deps(app, {get_resolver: resolver, get_posthog_client: posthog_client}):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            return await client.request(method, url, **kwargs)


# ---------------------------------------------------------------------------
# POST /api/v1/lyrics/resolve
# ---------------------------------------------------------------------------


class TestResolveEndpoint:
    @pytest.mark.asyncio
    async def test_resolves(self, lrc_provider):
        response = await _request(
            make_resolver([lrc_provider]), "POST", "/api/v1/lyrics/resolve", json=RESOLVE_BODY
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["result"]["source"] == "lrclib"
        assert data["result"]["has_timestamps"] is True
        assert data["language"] == "en"
        assert data["parse_source"] == "fields"
        assert data["cache_stats"] is not None

    @pytest.mark.asyncio
    async def test_raw_text_alias(self, lrc_provider):
        response = await _request(
            make_resolver([lrc_provider]),
            "POST",
            "/api/v1/lyrics/resolve",
            json={"rawText": "Ed Sheeran - Perfect"},
        )
        data = response.json()
        assert (data["artist"], data["title"]) == ("Ed Sheeran", "Perfect")
        assert data["parse_source"] == "dash"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"artist": "  ", "title": ""}, {"rawText": "   "}])
    async def test_empty_request_400(self, lrc_provider, body):
        response = await _request(make_resolver([lrc_provider]), "POST", "/api/v1/lyrics/resolve", json=body)
        assert response.status_code == 400
        assert lrc_provider.calls == 0

    @pytest.mark.asyncio
    async def test_not_found_is_200(self):
        resolver = make_resolver([failing_provider("lrclib"), failing_provider("genius")])
        response = await _request(resolver, "POST", "/api/v1/lyrics/resolve", json=RESOLVE_BODY)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["result"] is None
        assert data["error"]

    @pytest.mark.asyncio
    async def test_serves_cache(self, lrc_provider):
        store = InMemoryStore([make_entry(source="melon")])
        response = await _request(
            make_resolver([lrc_provider], store=store), "POST", "/api/v1/lyrics/resolve", json=RESOLVE_BODY
        )
        data = response.json()
        assert data["cached"] is True
        assert data["result"]["source"] == "melon"
        assert lrc_provider.calls == 0

    @pytest.mark.asyncio
    async def test_skip_cache_param(self, lrc_provider):
        store = InMemoryStore([make_entry(source="melon")])
        response = await _request(
            make_resolver([lrc_provider], store=store),
            "POST",
            "/api/v1/lyrics/resolve?skip_cache=true",
            json=RESOLVE_BODY,
        )
        data = response.json()
        assert data["cached"] is False
        assert data["result"]["source"] == "lrclib"
        assert lrc_provider.calls == 1

    @pytest.mark.asyncio
    async def test_sends_telemetry(self, lrc_provider, mock_posthog_client):
        await _request(
            make_resolver([lrc_provider]),
            "POST",
            "/api/v1/lyrics/resolve",
            posthog_client=mock_posthog_client,
            json=RESOLVE_BODY,
        )
        events = [c.kwargs["event"] for c in mock_posthog_client.capture.call_args_list]
        assert "lyrics_resolved" in events

    @pytest.mark.asyncio
    async def test_unexpected_error_500(self, lrc_provider):
        resolver = make_resolver([lrc_provider])
        resolver.resolve = AsyncMock(side_effect=RuntimeError("boom"))

        with patch("lyrics.router.capture_exception") as mock_capture:
            response = await _request(resolver, "POST", "/api/v1/lyrics/resolve", json=RESOLVE_BODY)

        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"
        mock_capture.assert_called_once()
        assert mock_capture.call_args.args[1] == {"artist": "Ed Sheeran", "title": "Perfect"}


# ---------------------------------------------------------------------------
# GET /api/v1/lyrics/parse
# ---------------------------------------------------------------------------


class TestParseEndpoint:
    @pytest.mark.asyncio
    async def test_dash(self):
        response = await _request(make_resolver([]), "GET", "/api/v1/lyrics/parse", params={"q": "IU - Good Day"})
        assert response.status_code == 200
        assert response.json() == {"artist": "IU", "title": "Good Day", "source": "dash"}

    @pytest.mark.asyncio
    async def test_blank_400(self):
        response = await _request(make_resolver([]), "GET", "/api/v1/lyrics/parse", params={"q": "   "})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_q_422(self):
        response = await _request(make_resolver([]), "GET", "/api/v1/lyrics/parse")
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# GET /api/v1/lyrics/providers
# ---------------------------------------------------------------------------


class TestProvidersEndpoint:
    @pytest.fixture
    def resolver(self):
        return make_resolver(
            [
                FakeProvider("lrclib", authoritative=True),
                FakeProvider("genius", confidence_ceiling=0.85),
                FakeProvider("melon", timeout=4.0),
            ]
        )

    @pytest.mark.asyncio
    async def test_korean_routing(self, resolver):
        response = await _request(resolver, "GET", "/api/v1/lyrics/providers", params=KOREAN_QUERY)
        data = response.json()
        assert data["language"] == "ko"
        assert [p["id"] for p in data["providers"]] == ["lrclib", "melon"]
        assert data["providers"][0]["authoritative"] is True
        assert data["providers"][1]["timeout"] == 4.0

    @pytest.mark.asyncio
    async def test_english_routing(self, resolver):
        response = await _request(resolver, "GET", "/api/v1/lyrics/providers", params=RESOLVE_BODY)
        data = response.json()
        assert data["language"] == "en"
        assert [p["id"] for p in data["providers"]] == ["lrclib", "genius"]
        assert data["providers"][1]["confidence_ceiling"] == 0.85
