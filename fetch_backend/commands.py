"""
Command interface of the fetch backend.

The backend is reached through two request/response commands, start and
cancel. Each may fail independently; failures surface as
``BackendCommandError``.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from .models import ErrorInfo, ErrorKind, FetchOptions, Provider

logger = logging.getLogger(__name__)


@dataclass
class Ack:
    """Acknowledgement returned by a successful command."""
    accepted: bool = True
    message: str = ""


class BackendCommandError(Exception):
    """A command could not be delivered or was rejected by the backend."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.SYSTEM, retryable: bool = True):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.retryable = retryable

    def to_error_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=self.message, retryable=self.retryable)


class BackendCommands:
    """Abstract command interface implemented by each transport."""

    def start_fetch(self, options: FetchOptions) -> Ack:
        raise NotImplementedError

    def cancel_fetch(self) -> Ack:
        raise NotImplementedError


def build_session(proxy_url: Optional[str] = None) -> requests.Session:
    """Build a requests session with optional proxy configuration."""
    session = requests.Session()
    if proxy_url:
        logger.info("Using proxy: %s", proxy_url)
        session.proxies.update({"http": proxy_url, "https": proxy_url})
    return session


class HttpBackendCommands(BackendCommands):
    """Commands sent to a fetch backend over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key_lookup: Callable[[Provider], str],
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._api_key_lookup = api_key_lookup
        self._session = session or build_session()

    def start_fetch(self, options: FetchOptions) -> Ack:
        """Ask the backend to begin a session with *options*.

        Any failure here is a transport-level problem and maps to a
        retryable ``system`` error, whatever the backend said.
        """
        body = {
            "options": options.to_command_payload(),
            "api_key": self._api_key_lookup(options.provider) or "",
        }
        response = self._post("/fetch/start", body)
        return Ack(accepted=True, message=self._response_message(response))

    def cancel_fetch(self) -> Ack:
        response = self._post("/fetch/cancel", {})
        return Ack(accepted=True, message=self._response_message(response))

    def _post(self, path: str, body: dict) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise BackendCommandError(f"Failed to reach fetch backend: {exc}")

        if response.status_code >= 400:
            message = self._response_message(response) or f"Backend returned HTTP {response.status_code}"
            raise BackendCommandError(message)
        return response

    @staticmethod
    def _response_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text.strip()
        if isinstance(data, dict):
            return str(data.get("message") or data.get("error") or "")
        return ""
