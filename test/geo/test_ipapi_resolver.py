import json

import httpx
import pytest

from trust_guard.geo import IPAPIResolver
from trust_guard.shared.errors import GeoResolverError

ENDPOINT = "https://geo.example/{ip}/json/"


def _resolver(handler, endpoint=ENDPOINT):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return IPAPIResolver(endpoint, client=client), client


@pytest.mark.asyncio
async def test_resolve_success():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(
            200,
            json={"ip": "8.8.8.8", "country_name": "United States", "timezone": "America/Chicago"},
        )

    resolver, client = _resolver(handler)
    info = await resolver.resolve("8.8.8.8", timeout=0.5)
    assert info.country == "United States"
    assert info.timezone == "America/Chicago"
    assert seen == ["https://geo.example/8.8.8.8/json/"]
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [429, 500, 503])
async def test_non_200_status(status):
    resolver, client = _resolver(lambda request: httpx.Response(status, text="nope"))
    with pytest.raises(GeoResolverError) as ctx:
        await resolver.resolve("8.8.8.8", timeout=0.5)
    assert ctx.value.status_code == status
    assert str(ctx.value) == f"unexpected status: {status}"
    await client.aclose()


@pytest.mark.asyncio
async def test_malformed_json():
    resolver, client = _resolver(lambda request: httpx.Response(200, text="{not json"))
    with pytest.raises(GeoResolverError, match="malformed JSON"):
        await resolver.resolve("8.8.8.8", timeout=0.5)
    await client.aclose()


@pytest.mark.asyncio
async def test_non_object_payload():
    resolver, client = _resolver(lambda request: httpx.Response(200, text=json.dumps(["x"])))
    with pytest.raises(GeoResolverError, match="payload shape"):
        await resolver.resolve("8.8.8.8", timeout=0.5)
    await client.aclose()


@pytest.mark.asyncio
async def test_provider_error_flag():
    payload = {"error": True, "reason": "RateLimited"}
    resolver, client = _resolver(lambda request: httpx.Response(200, json=payload))
    with pytest.raises(GeoResolverError, match="provider error: RateLimited"):
        await resolver.resolve("8.8.8.8", timeout=0.5)
    await client.aclose()


@pytest.mark.asyncio
async def test_timeout_is_reported():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    resolver, client = _resolver(handler)
    with pytest.raises(GeoResolverError, match="timeout querying geo.example"):
        await resolver.resolve("8.8.8.8", timeout=0.5)
    await client.aclose()


@pytest.mark.asyncio
async def test_connection_error_is_reported():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    resolver, client = _resolver(handler)
    with pytest.raises(GeoResolverError, match="request to geo.example failed"):
        await resolver.resolve("8.8.8.8", timeout=0.5)
    await client.aclose()


def test_printf_style_endpoint():
    resolver = IPAPIResolver("https://ipapi.co/%s/json/", client=httpx.AsyncClient())
    assert resolver.url_for("2001:db8::1") == "https://ipapi.co/2001:db8::1/json/"


def test_ip_is_quoted_into_path():
    resolver = IPAPIResolver(ENDPOINT, client=httpx.AsyncClient())
    assert resolver.url_for("1.2.3.4/../admin") == "https://geo.example/1.2.3.4%2F..%2Fadmin/json/"


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open():
    resolver, client = _resolver(lambda request: httpx.Response(200, json={}))
    await resolver.aclose()
    assert not client.is_closed
    await client.aclose()

    owned = IPAPIResolver(ENDPOINT)
    await owned.aclose()
    assert owned._client.is_closed
