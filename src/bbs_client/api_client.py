"""Request/response calls against the BBS backend over aiohttp."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(message)


class AuthError(ApiError):
    """A protected call was rejected because the credential is invalid or expired."""


def _build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def _error_message(payload: Any, status: int) -> str:
    if isinstance(payload, dict):
        for key in ("error", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {status}"


class ApiClient:
    """Thin async wrapper around the ``/api`` resources.

    ``credential`` is read on every protected call so that clearing or
    replacing the stored credential takes effect immediately.
    """

    def __init__(
        self,
        api_url: str,
        http: aiohttp.ClientSession,
        credential: Callable[[], Optional[str]],
        timeout_s: float = 15.0,
    ) -> None:
        self.api_url = api_url
        self._http = http
        self._credential = credential
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        auth: bool = False,
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        credential = self._credential()
        if auth and credential:
            headers["Authorization"] = f"Bearer {credential}"
        url = _build_url(self.api_url, path)
        try:
            async with self._http.request(
                method,
                url,
                json=payload,
                params=params,
                headers=headers,
                timeout=self._timeout,
            ) as response:
                status = response.status
                raw = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiError(0, f"network error: {exc}") from exc

        try:
            data = json.loads(raw.decode("utf-8")) if raw else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ApiError(status, f"malformed response from {path}") from exc

        if status == 401 and auth:
            raise AuthError(status, _error_message(data, status))
        if status >= 400:
            logger.warning("%s %s -> %s", method, path, status)
            raise ApiError(status, _error_message(data, status))
        return data

    async def list_boards(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/boards")

    async def list_posts(self, board_id: Any) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/boards/{board_id}/posts")

    async def create_post(self, board_id: Any, content: str) -> Dict[str, Any]:
        return await self._request("POST", f"/boards/{board_id}/posts", payload={"content": content}, auth=True)

    async def list_art(self, session_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", "/ascii-art", params={"sessionId": session_id})

    async def submit_art(self, title: str, content: str, session_id: str) -> Dict[str, Any]:
        payload = {"title": title, "content": content, "sessionId": session_id}
        return await self._request("POST", "/ascii-art", payload=payload, auth=True)

    async def vote_art(self, art_id: Any, session_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/ascii-art/{art_id}/vote", payload={"sessionId": session_id})

    async def list_file_categories(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/files/categories")

    async def list_files(self, category_id: Any) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/files/category/{category_id}")

    async def download_file(self, file_id: Any) -> Dict[str, Any]:
        return await self._request("GET", f"/files/download/{file_id}")

    async def upload_file(self, category_id: Any, filename: str, description: str, content: str) -> Dict[str, Any]:
        payload = {
            "categoryId": category_id,
            "filename": filename,
            "description": description,
            "content": content,
        }
        return await self._request("POST", "/files/upload", payload=payload, auth=True)

    async def fetch_profile(self) -> Dict[str, Any]:
        return await self._request("GET", "/agents/me", auth=True)

    async def list_agents(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/agents/list")

    async def list_nodes(self) -> Dict[str, Any]:
        return await self._request("GET", "/nodes")

    async def fetch_stats(self) -> Dict[str, Any]:
        return await self._request("GET", "/stats")

    async def post_comment(self, content: str) -> Dict[str, Any]:
        return await self._request("POST", "/sysop/comments", payload={"content": content})

    async def fetch_sysop_reply(self, comment_id: Any) -> Dict[str, Any]:
        return await self._request("POST", "/sysop/reply", payload={"commentId": comment_id})

    async def game_start(self, username: str, agent_id: Optional[str]) -> Dict[str, Any]:
        return await self._request("POST", "/game/start", payload={"username": username, "agentId": agent_id})

    async def game_action(self, username: str, action: str, target: str) -> Dict[str, Any]:
        payload = {"username": username, "action": action, "target": target}
        return await self._request("POST", "/game/action", payload=payload)

    async def list_activity(self, limit: int = 50) -> List[Dict[str, Any]]:
        return await self._request("GET", "/activity", params={"limit": str(limit)})

    async def fetch_quote(self) -> Dict[str, Any]:
        return await self._request("GET", "/quote")
