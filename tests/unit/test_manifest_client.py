"""Test manifest loading and its fail-open-to-empty policy."""
from __future__ import annotations

import hashlib

import httpx
import pytest
import respx

from shieldops.engine.manifest_client import ManifestClient
from shieldops.infrastructure.external import GitHubContentProvider

pytestmark = pytest.mark.asyncio

H1 = hashlib.sha256(b"hello").hexdigest()
MANIFEST_URL = "https://api.github.com/repos/acme/canonical/contents/trusted_hashes.json?ref=main"


async def test_load_flat_manifest(make_provider) -> None:
    provider = make_provider(manifest={"a.txt": H1})
    manifest = await ManifestClient(provider).load()
    assert manifest.expected_digest("a.txt") == H1
    assert provider.manifest_calls == 1


async def test_http_404_yields_empty_manifest(make_provider) -> None:
    manifest = await ManifestClient(make_provider(manifest_status=404)).load()
    assert len(manifest) == 0


async def test_malformed_payload_yields_empty_manifest(make_provider) -> None:
    manifest = await ManifestClient(make_provider(manifest=b"<html>rate limited</html>")).load()
    assert len(manifest) == 0


async def test_non_object_payload_yields_empty_manifest(make_provider) -> None:
    manifest = await ManifestClient(make_provider(manifest=b'["a.txt"]')).load()
    assert len(manifest) == 0


async def test_custom_manifest_path(coordinates) -> None:
    async with respx.mock:
        route = respx.get(
            "https://api.github.com/repos/acme/canonical/contents/meta/hashes.json?ref=main"
        ).mock(return_value=httpx.Response(200, json={"a.txt": H1}))
        async with GitHubContentProvider(coordinates, retry_base_delay=0) as provider:
            manifest = await ManifestClient(provider, "meta/hashes.json").load()
    assert route.called
    assert dict(manifest) == {"a.txt": H1}


async def test_server_error_after_retries_yields_empty_manifest(coordinates) -> None:
    async with respx.mock:
        route = respx.get(MANIFEST_URL).mock(return_value=httpx.Response(500))
        async with GitHubContentProvider(coordinates, max_retries=1, retry_base_delay=0) as provider:
            manifest = await ManifestClient(provider).load()
    assert route.call_count == 2
    assert len(manifest) == 0


async def test_transport_failure_yields_empty_manifest(coordinates) -> None:
    async with respx.mock:
        respx.get(MANIFEST_URL).mock(side_effect=httpx.ConnectError("refused"))
        async with GitHubContentProvider(coordinates, max_retries=0) as provider:
            manifest = await ManifestClient(provider).load()
    assert len(manifest) == 0


async def test_unexpected_provider_failure_yields_empty_manifest(make_provider) -> None:
    provider = make_provider()

    async def broken_fetch(manifest_path: str) -> bytes:
        raise RuntimeError("provider bug")

    provider.fetch_manifest = broken_fetch

    manifest = await ManifestClient(provider).load()

    assert len(manifest) == 0
