"""HTTP and local clients for the remote folder service."""

from __future__ import annotations

from functools import lru_cache
import time
from typing import Any, Dict, List, Optional, Protocol
import uuid

import httpx

from folder_core.core.config import get_settings
from folder_core.core.errors import NetworkError, RecordNotFoundError, UnauthorizedError
from folder_core.core.logger import get_logger
from folder_core.schemas.app import AppRevision, CreateAppParams, UpdateAppParams


logger = get_logger("folder.integrations.cloud")


class FolderCloudService(Protocol):
    async def create_app(self, token: str, params: CreateAppParams) -> AppRevision:
        raise NotImplementedError

    async def update_app(self, token: str, params: UpdateAppParams) -> None:
        raise NotImplementedError

    async def delete_app(self, token: str, app_ids: List[str]) -> None:
        raise NotImplementedError

    async def read_app(self, token: str, app_id: str) -> Optional[AppRevision]:
        raise NotImplementedError


class HttpFolderCloudService:
    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: int = 20,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.strip().rstrip("/")
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    @property
    def app_url(self) -> str:
        return f"{self._base_url}/api/app"

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    async def _request(
        self,
        method: str,
        *,
        token: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        if not self._base_url:
            raise NetworkError("cloud_base_url_missing")
        try:
            if self._client is not None:
                response = await self._client.request(
                    method,
                    self.app_url,
                    headers=self._headers(token),
                    json=json,
                    params=params,
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                    response = await client.request(
                        method,
                        self.app_url,
                        headers=self._headers(token),
                        json=json,
                        params=params,
                    )
        except httpx.HTTPError as exc:
            raise NetworkError(f"cloud_request_failed method={method} error={type(exc).__name__}") from exc

        if response.status_code == 401:
            raise UnauthorizedError("cloud_rejected_token")
        if response.status_code == 404:
            raise RecordNotFoundError("cloud_app_not_found")
        if response.status_code < 200 or response.status_code >= 300:
            detail = response.text.strip()
            if len(detail) > 200:
                detail = detail[:200] + "..."
            raise NetworkError(f"cloud_request_failed status={response.status_code} detail={detail}")
        return response

    def _safe_json(self, response: httpx.Response, *, context: str) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkError(f"{context} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise NetworkError(f"{context} returned invalid payload format")
        return payload

    async def create_app(self, token: str, params: CreateAppParams) -> AppRevision:
        response = await self._request("POST", token=token, json=params.model_dump(mode="json"))
        payload = self._safe_json(response, context="create_app")
        try:
            return AppRevision.model_validate(payload)
        except ValueError as exc:
            raise NetworkError("create_app returned invalid app revision") from exc

    async def update_app(self, token: str, params: UpdateAppParams) -> None:
        await self._request("PATCH", token=token, json=params.model_dump(mode="json", exclude_none=True))

    async def delete_app(self, token: str, app_ids: List[str]) -> None:
        await self._request("DELETE", token=token, json={"items": list(app_ids)})

    async def read_app(self, token: str, app_id: str) -> Optional[AppRevision]:
        try:
            response = await self._request("GET", token=token, params={"app_id": app_id})
        except RecordNotFoundError:
            return None
        payload = self._safe_json(response, context="read_app")
        try:
            return AppRevision.model_validate(payload)
        except ValueError as exc:
            raise NetworkError("read_app returned invalid app revision") from exc


class LocalFolderCloudService:
    """Offline stand-in for the cloud: mints ids locally and accepts every write."""

    async def create_app(self, token: str, params: CreateAppParams) -> AppRevision:
        del token
        now = int(time.time())
        return AppRevision(
            id=str(uuid.uuid4()),
            workspace_id=params.workspace_id,
            name=params.name,
            desc=params.desc,
            color_style=params.color_style,
            create_time=now,
            modified_time=now,
        )

    async def update_app(self, token: str, params: UpdateAppParams) -> None:
        del token, params

    async def delete_app(self, token: str, app_ids: List[str]) -> None:
        del token, app_ids

    async def read_app(self, token: str, app_id: str) -> Optional[AppRevision]:
        del token, app_id
        return None


@lru_cache(maxsize=1)
def get_cloud_service() -> FolderCloudService:
    settings = get_settings()
    if not settings.cloud_base_url.strip():
        logger.info("cloud_service_local_mode")
        return LocalFolderCloudService()
    return HttpFolderCloudService(
        base_url=settings.cloud_base_url,
        timeout_seconds=settings.cloud_timeout_seconds,
    )
