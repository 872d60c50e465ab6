"""Current-user token provider consumed by folder controllers."""

from __future__ import annotations

from typing import Optional, Protocol

from folder_core.core.errors import UnauthorizedError


class WorkspaceUser(Protocol):
    def user_id(self) -> str:
        raise NotImplementedError

    def token(self) -> str:
        raise NotImplementedError


class SessionUser:
    """In-process session: holds the signed-in user's token, if any."""

    def __init__(self, user_id: str, token: Optional[str] = None) -> None:
        self._user_id = user_id
        self._token = (token or "").strip() or None

    def user_id(self) -> str:
        return self._user_id

    def token(self) -> str:
        if self._token is None:
            raise UnauthorizedError("user_session_missing_token")
        return self._token

    def sign_in(self, token: str) -> None:
        if not token.strip():
            raise UnauthorizedError("user_session_empty_token")
        self._token = token.strip()

    def sign_out(self) -> None:
        self._token = None
