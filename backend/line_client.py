"""Minimal LINE Messaging API client (push and reply text messages)."""
import logging
import time
from typing import Callable, Optional

import httpx

import config

logger = logging.getLogger(__name__)

LINE_API_BASE = "https://api.line.me/v2/bot"
# LINE rejects text messages longer than this
MAX_TEXT_LENGTH = 5000
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class LineMessenger:
    """Sends text through the LINE Messaging API.

    Retries 429 and 5xx responses with exponential backoff; any other
    error status raises httpx.HTTPStatusError straight away.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.access_token = access_token or config.LINE_CHANNEL_ACCESS_TOKEN
        self.client = client or httpx.Client(base_url=LINE_API_BASE, timeout=10.0)
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def _post(self, path: str, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        attempt = 0
        while True:
            response = self.client.post(path, json=payload, headers=headers)
            if response.status_code not in RETRYABLE_STATUS or attempt >= self.max_retries:
                response.raise_for_status()
                return response
            delay = self.backoff_seconds * (2 ** attempt)
            logger.warning(
                "LINE API %s returned %s, retrying in %.1fs (attempt %s/%s)",
                path, response.status_code, delay, attempt + 1, self.max_retries,
            )
            self.sleep(delay)
            attempt += 1

    @staticmethod
    def _text_message(text: str) -> dict:
        if len(text) > MAX_TEXT_LENGTH:
            text = text[: MAX_TEXT_LENGTH - 3] + "..."
        return {"type": "text", "text": text}

    def push_text(self, user_id: str, text: str) -> None:
        self._post("/message/push", {"to": user_id, "messages": [self._text_message(text)]})
        logger.debug("Pushed message to %s (%s chars)", user_id, len(text))

    def reply_text(self, reply_token: str, text: str) -> None:
        self._post("/message/reply", {"replyToken": reply_token, "messages": [self._text_message(text)]})

    def close(self) -> None:
        self.client.close()
