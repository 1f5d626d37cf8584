"""REST calls to the chat gateway and media downloads.

One ``GatewayClient`` (wrapping one ``httpx.AsyncClient``) is created at
startup and shared by every message task. None of the calls set a timeout:
a stalled download blocks only the task that issued it.
"""

from __future__ import annotations

from typing import Any

import httpx

from hoard.exceptions import DownloadError, OutboundCallError
from hoard.logging import get_logger

log = get_logger("api")

USER_AGENT = "hoard/0.1"


class GatewayClient:
    """Thin async client for the gateway's HTTP endpoints.

    Every call that acts on behalf of the bot account takes the session key
    explicitly; the client itself holds no per-connection state.
    """

    def __init__(
        self,
        base_url: str,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Gateway REST base, e.g. ``http://localhost:8080``.
            http: Optional pre-built httpx client (tests inject one).
        """
        self.base_url = base_url.rstrip("/")
        if http is None:
            # System proxy settings are ignored; the gateway is usually local
            http = httpx.AsyncClient(
                timeout=None,
                follow_redirects=True,
                trust_env=False,
                headers={"User-Agent": USER_AGENT},
            )
        self._http = http

    async def resolve_file_url(
        self,
        session_key: str,
        group_id: int,
        media_id: str,
    ) -> str:
        """Look up the download URL of a group file.

        Args:
            session_key: Current connection's session token.
            group_id: Group the file was uploaded to.
            media_id: File id from the File segment.

        Returns:
            Direct download URL.

        Raises:
            OutboundCallError: On transport failure, error status, or a
                response without ``data.downloadInfo.url``.
        """
        body = await self._request(
            "GET",
            "/file/info",
            params={
                "sessionKey": session_key,
                "group": group_id,
                "id": media_id,
                "withDownloadInfo": "true",
            },
        )
        try:
            url = body["data"]["downloadInfo"]["url"]
        except (KeyError, TypeError) as e:
            raise OutboundCallError(
                f"file info for {media_id} has no download url"
            ) from e
        if not isinstance(url, str) or not url:
            raise OutboundCallError(f"file info for {media_id} has no download url")
        return url

    async def send_friend_message(
        self, session_key: str, target: int, text: str
    ) -> dict[str, Any]:
        """Send a plain-text direct message."""
        return await self._send("/sendFriendMessage", session_key, target, text)

    async def send_group_message(
        self, session_key: str, target: int, text: str
    ) -> dict[str, Any]:
        """Send a plain-text group message."""
        return await self._send("/sendGroupMessage", session_key, target, text)

    async def download(self, url: str) -> bytes:
        """Fetch media bytes.

        Raises:
            DownloadError: On transport failure or error status.
        """
        try:
            response = await self._http.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DownloadError(
                f"download returned HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DownloadError(f"download failed: {e}") from e
        return response.content

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def _send(
        self, path: str, session_key: str, target: int, text: str
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            path,
            json={
                "sessionKey": session_key,
                "target": target,
                "messageChain": [{"type": "Plain", "text": text}],
            },
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = await self._http.request(method, url, **kwargs)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise OutboundCallError(
                f"{method} {path} returned HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise OutboundCallError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise OutboundCallError(f"{method} {path} returned invalid JSON") from e

        if not isinstance(body, dict):
            raise OutboundCallError(f"{method} {path} returned non-object JSON")

        # The gateway reports failures in-band with a non-zero code
        code = body.get("code", 0)
        if code != 0:
            raise OutboundCallError(
                f"{method} {path} failed with code {code}: {body.get('msg', '')}"
            )

        log.debug("gateway_call", method=method, path=path, code=body.get("code"))
        return body
