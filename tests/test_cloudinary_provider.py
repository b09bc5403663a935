"""Tests for the Cloudinary adapter using an httpx mock transport."""

import hashlib
import json
from datetime import UTC, datetime

import httpx
import pytest

from marketplace_core.assets.cloudinary import CloudinaryStorageProvider, encode_context, sign
from marketplace_core.assets.models import AssetStatus, UploadOptions
from marketplace_core.errors import StorageError


def make_provider(client: httpx.AsyncClient) -> CloudinaryStorageProvider:
    return CloudinaryStorageProvider("demo", "key-1", "secret-1", client=client)


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_signature_is_sha1_of_sorted_params_plus_secret():
    params = {"timestamp": 1700000000, "folder": "listings", "public_id": "", "context": None}

    expected = hashlib.sha1(b"folder=listings&timestamp=1700000000abcd").hexdigest()
    assert sign(params, "abcd") == expected


def test_context_encoding_escapes_separators():
    assert encode_context({"status": "temporary", "note": "a=b|c"}) == r"status=temporary|note=a\=b\|c"


def test_key_for_url_extracts_public_id():
    provider = CloudinaryStorageProvider("demo", "k", "s")

    assert (
        provider.key_for_url("https://res.cloudinary.com/demo/image/upload/v1712/listings/abc.jpg")
        == "listings/abc"
    )
    assert (
        provider.key_for_url("https://res.cloudinary.com/demo/image/upload/listings/abc.png?x=1")
        == "listings/abc"
    )
    assert provider.key_for_url("https://example.test/listings/abc.png") is None
    assert provider.key_for_url("") is None


@pytest.mark.asyncio
async def test_upload_sends_signed_request_with_temporary_context():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.content
        return httpx.Response(
            200,
            json={
                "public_id": "listings/abc",
                "secure_url": "https://res.cloudinary.com/demo/image/upload/v1/listings/abc.jpg",
                "bytes": 123456,
            },
        )

    async with make_client(handler) as client:
        provider = make_provider(client)
        result = await provider.upload_stream(
            b"\x89PNG...",
            UploadOptions(
                folder="listings",
                max_width=1200,
                max_height=1200,
                quality="auto:low",
                metadata={"status": "temporary"},
            ),
        )

    assert result.key == "listings/abc"
    assert result.bytes == 123456
    assert seen["path"] == "/v1_1/demo/image/upload"
    assert b"status=temporary" in seen["body"]
    assert b"c_limit,h_1200,w_1200/q_auto:low" in seen["body"]
    assert b'name="signature"' in seen["body"]


@pytest.mark.asyncio
async def test_search_parses_resources_and_cursor():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization", "")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "resources": [
                    {
                        "public_id": "listings/abc",
                        "secure_url": "https://res.cloudinary.com/demo/image/upload/v1/listings/abc.jpg",
                        "created_at": "2025-01-01T10:00:00Z",
                        "context": {"status": "temporary", "uploaded_at": "2025-01-01T09:59:00+00:00"},
                    }
                ],
                "next_cursor": "next-1",
            },
        )

    async with make_client(handler) as client:
        provider = make_provider(client)
        page = await provider.search("listings", AssetStatus.TEMPORARY, cursor="prev")

    assert seen["path"] == "/v1_1/demo/resources/search"
    assert seen["auth"].startswith("Basic ")
    assert seen["body"]["next_cursor"] == "prev"
    assert "context.status=temporary" in seen["body"]["expression"]
    assert 'folder:"listings/*"' in seen["body"]["expression"]
    assert page.next_cursor == "next-1"
    asset = page.items[0]
    assert asset.status is AssetStatus.TEMPORARY
    assert asset.created_at == datetime(2025, 1, 1, 10, 0, tzinfo=UTC)
    assert asset.uploaded_at == datetime(2025, 1, 1, 9, 59, tzinfo=UTC)


@pytest.mark.asyncio
async def test_delete_reports_not_found_as_false():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"result": "not found"})

    async with make_client(handler) as client:
        provider = make_provider(client)
        assert await provider.delete("listings/gone") is False


@pytest.mark.asyncio
async def test_set_metadata_on_missing_asset_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"public_ids": []})

    async with make_client(handler) as client:
        provider = make_provider(client)
        with pytest.raises(StorageError):
            await provider.set_metadata("listings/gone", {"status": "permanent"})


@pytest.mark.asyncio
async def test_http_failure_raises_storage_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="internal error")

    async with make_client(handler) as client:
        provider = make_provider(client)
        with pytest.raises(StorageError):
            await provider.search("listings", AssetStatus.TEMPORARY)
