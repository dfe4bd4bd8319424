import logging
from typing import Any

import httpx
from fastapi import UploadFile

from shareplate.models import StorageHandle

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class RelayError(Exception):
    pass


class RelayNotConfiguredError(RelayError):
    pass


def read_upload(source: UploadFile, max_size_bytes: int) -> bytes:
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = source.file.read(CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size_bytes:
            raise ValueError("File exceeds max upload size")
        chunks.append(chunk)
    return b"".join(chunks)


class TelegramRelay:
    """Stores files as documents posted to a Telegram channel via the Bot API."""

    def __init__(
        self,
        bot_token: str,
        channel_id: str,
        *,
        api_base: str = "https://api.telegram.org",
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ):
        self.bot_token = bot_token
        self.channel_id = channel_id
        self.api_base = api_base.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.channel_id)

    def _require_configured(self) -> None:
        if not self.configured:
            raise RelayNotConfiguredError("Telegram bot token and channel ID are required")

    def _call(self, method: str, *, http_method: str = "POST", **kwargs: Any) -> Any:
        url = f"{self.api_base}/bot{self.bot_token}/{method}"
        try:
            resp = self._client.request(http_method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise RelayError(f"Telegram API request failed: {type(exc).__name__}") from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.error("Unparseable %s response from Telegram (status %s)", method, resp.status_code)
            raise RelayError("Invalid response from Telegram API") from exc

        if not isinstance(payload, dict):
            raise RelayError("Invalid response from Telegram API")
        if not payload.get("ok"):
            description = payload.get("description") or "Unknown error"
            raise RelayError(f"Telegram API error: {description}")
        if "result" not in payload:
            raise RelayError("Telegram API response is missing a result")
        return payload["result"]

    def upload(self, *, filename: str, content: bytes, content_type: str) -> StorageHandle:
        self._require_configured()
        logger.info("Uploading %s (%d bytes) to Telegram", filename, len(content))
        result = self._call(
            "sendDocument",
            data={"chat_id": self.channel_id},
            files={"document": (filename, content, content_type)},
        )
        try:
            document = result["document"]
            return StorageHandle(
                file_id=document["file_id"],
                message_id=result["message_id"],
                file_name=document.get("file_name") or filename,
            )
        except (KeyError, TypeError) as exc:
            raise RelayError("Telegram API response is missing document details") from exc

    def download_link(self, file_id: str) -> str:
        self._require_configured()
        result = self._call("getFile", http_method="GET", params={"file_id": file_id})
        file_path = result.get("file_path") if isinstance(result, dict) else None
        if not file_path:
            raise RelayError("Telegram API did not return a file path")
        return f"{self.api_base}/file/bot{self.bot_token}/{file_path}"

    def discard(self, handle: StorageHandle) -> bool:
        """Delete the channel message backing ``handle``.

        Best effort: a failure is logged and reported as ``False`` so callers
        can still drop their own record.
        """
        try:
            self._require_configured()
            self._call(
                "deleteMessage",
                json={"chat_id": self.channel_id, "message_id": handle.message_id},
            )
        except RelayError as exc:
            logger.warning("Failed to delete message %s from Telegram: %s", handle.message_id, exc)
            return False
        return True

    def close(self) -> None:
        self._client.close()
