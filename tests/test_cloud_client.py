from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from folder_core.core.errors import NetworkError, UnauthorizedError
from folder_core.integrations.cloud.client import HttpFolderCloudService, LocalFolderCloudService
from folder_core.schemas.app import CreateAppParams, UpdateAppParams


def _service(handler) -> tuple[HttpFolderCloudService, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpFolderCloudService(base_url="https://folder.example.test/", client=client), client


def test_create_app_posts_params_and_parses_revision() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": "a1",
                "workspace_id": body["workspace_id"],
                "name": body["name"],
                "create_time": 10,
                "modified_time": 10,
            },
        )

    async def scenario() -> None:
        service, client = _service(handler)
        async with client:
            revision = await service.create_app("t", CreateAppParams(workspace_id="W1", name="A"))
        assert revision.id == "a1"
        assert revision.workspace_id == "W1"
        assert revision.create_time == 10

    asyncio.run(scenario())
    assert seen[0].method == "POST"
    assert str(seen[0].url) == "https://folder.example.test/api/app"
    assert seen[0].headers["Authorization"] == "Bearer t"


def test_update_app_sends_only_present_fields() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "PATCH"
        bodies.append(json.loads(request.content))
        return httpx.Response(204)

    async def scenario() -> None:
        service, client = _service(handler)
        async with client:
            await service.update_app("t", UpdateAppParams(id="a1", name="B"))

    asyncio.run(scenario())
    assert bodies == [{"id": "a1", "name": "B"}]


def test_status_codes_map_to_error_kinds() -> None:
    statuses = iter([401, 500, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        del request
        status_code = next(statuses)
        if status_code == 200:
            return httpx.Response(200, content=b"not-json")
        return httpx.Response(status_code, text="boom")

    async def scenario() -> None:
        service, client = _service(handler)
        params = CreateAppParams(workspace_id="W1", name="A")
        async with client:
            with pytest.raises(UnauthorizedError):
                await service.create_app("t", params)
            with pytest.raises(NetworkError):
                await service.create_app("t", params)
            with pytest.raises(NetworkError):
                await service.create_app("t", params)

    asyncio.run(scenario())


def test_transport_error_becomes_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    async def scenario() -> None:
        service, client = _service(handler)
        async with client:
            with pytest.raises(NetworkError):
                await service.delete_app("t", ["a1"])

    asyncio.run(scenario())


def test_read_app_returns_none_on_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["app_id"] == "a1"
        return httpx.Response(404)

    async def scenario() -> None:
        service, client = _service(handler)
        async with client:
            assert await service.read_app("t", "a1") is None

    asyncio.run(scenario())


def test_missing_base_url_fails_fast() -> None:
    async def scenario() -> None:
        service = HttpFolderCloudService(base_url="")
        with pytest.raises(NetworkError):
            await service.update_app("t", UpdateAppParams(id="a1"))

    asyncio.run(scenario())


def test_local_cloud_mints_unique_ids() -> None:
    async def scenario() -> None:
        service = LocalFolderCloudService()
        params = CreateAppParams(workspace_id="W1", name="A")
        first = await service.create_app("t", params)
        second = await service.create_app("t", params)
        assert first.id != second.id
        assert first.workspace_id == "W1"
        assert await service.read_app("t", first.id) is None

    asyncio.run(scenario())
