"""
Thin async wrapper over the conversation endpoints.
"""
from typing import Any, Optional

import httpx


class ApiError(Exception):
    """Non-2xx response. `code` is the server's error code when it sent one."""

    def __init__(self, status_code: int, code: str, message: str = ""):
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409


class ConversationApi:
    """
    Args:
        client: an httpx.AsyncClient whose base_url points at the server root
        token: access token sent as a Bearer header
        prefix: API mount point
    """

    def __init__(self, client: httpx.AsyncClient, token: str, prefix: str = "/api/v1"):
        self._client = client
        self._headers = {"Authorization": f"Bearer {token}"}
        self._prefix = prefix

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> Any:
        resp = await self._client.request(method, self._prefix + path, json=json, headers=self._headers)
        if resp.status_code >= 400:
            code, message = "HTTP_ERROR", resp.text
            try:
                detail = resp.json().get("detail")
            except ValueError:
                detail = None
            if isinstance(detail, dict):
                code, message = detail.get("code", code), detail.get("message", "")
            elif isinstance(detail, str):
                code = detail
            raise ApiError(resp.status_code, code, message)
        return resp.json()["data"]

    async def get(self, cid: str) -> dict:
        return await self._request("GET", f"/conversations/{cid}")

    async def start(self, loveslice_id: int | None = None, starter_id: int | None = None) -> dict:
        return await self._request("POST", "/conversations", {"lovesliceId": loveslice_id, "starterId": starter_id})

    async def post_message(self, cid: str, content: str) -> dict:
        return await self._request("POST", f"/conversations/{cid}/messages", {"content": content})

    async def initiate_ending(self, cid: str) -> dict:
        return await self._request("PATCH", f"/conversations/{cid}/initiate-end")

    async def confirm_ending(self, cid: str, **payload) -> dict:
        return await self._request("PATCH", f"/conversations/{cid}/confirm-end", payload)

    async def cancel_ending(self, cid: str) -> dict:
        return await self._request("PATCH", f"/conversations/{cid}/cancel-end")

    async def add_final_note(self, cid: str, note: str) -> dict:
        return await self._request("PATCH", f"/conversations/{cid}/final-note", {"note": note})

    async def end_directly(self, cid: str, **payload) -> dict:
        return await self._request("PATCH", f"/conversations/{cid}/end", payload)
