import json
import logging
import threading
from typing import Any, Dict, Optional

import requests

from config import MaxResponseBytes, RequestTimeoutSeconds, UserAgent
from security import require_https

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


class TransportError(RuntimeError):
    """Network failure, non-success status or oversized response"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OperationCancelled(RuntimeError):
    """The rotation that issued this call was cancelled"""


def check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled("Operation cancelled")


class HttpClient:
    """HTTPS-only GET helper with a hard timeout and a response size cap"""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = RequestTimeoutSeconds,
        max_bytes: int = MaxResponseBytes,
    ):
        if session is None:
            session = requests.Session()
            # replaces the python-requests/x.y default
            session.headers["User-Agent"] = UserAgent
        self.session = session
        self.timeout = timeout
        self.max_bytes = max_bytes

    def get_bytes(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bytes:
        require_https(url)
        check_cancelled(cancel_event)

        try:
            response = self.session.get(
                url, params=params, headers=headers, timeout=self.timeout, stream=True
            )
        except requests.RequestException as error:
            raise TransportError(f"Request to {url} failed: {error}") from error

        try:
            # redirects must not downgrade the scheme either
            require_https(response.url or url)
            if response.status_code >= 400:
                raise TransportError(
                    f"Request to {url} failed with HTTP {response.status_code}",
                    status_code=response.status_code,
                )

            declared = response.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > self.max_bytes:
                raise TransportError(f"Response from {url} exceeds {self.max_bytes} bytes")

            buffer = bytearray()
            try:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    check_cancelled(cancel_event)
                    if not chunk:
                        continue
                    buffer.extend(chunk)
                    if len(buffer) > self.max_bytes:
                        raise TransportError(f"Response from {url} exceeds {self.max_bytes} bytes")
            except requests.RequestException as error:
                raise TransportError(f"Reading response from {url} failed: {error}") from error
            return bytes(buffer)
        finally:
            response.close()

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Any:
        body = self.get_bytes(url, params=params, headers=headers, cancel_event=cancel_event)
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as error:
            raise TransportError(f"Response from {url} is not valid JSON: {error}") from error

    def close(self) -> None:
        self.session.close()
