"""
Event stream of the fetch backend.

Progress snapshots are pushed on one topic for the whole process lifetime.
The HTTP transport reads them as server-sent events.
"""

import logging
import time
from typing import Iterator, List, Optional

import requests

from .commands import build_session
from .models import ProgressEvent, parse_progress_event

logger = logging.getLogger(__name__)


class EventSource:
    """Abstract progress topic. ``subscribe`` blocks and yields events in emission order."""

    def subscribe(self) -> Iterator[ProgressEvent]:
        raise NotImplementedError

    def close(self) -> None:
        """Stop delivering events; a blocked ``subscribe`` should return."""


def iter_sse_payloads(lines) -> Iterator[str]:
    """Group raw SSE lines into event payloads.

    Consecutive ``data:`` lines are joined with newlines; a blank line ends
    the event. Comment lines and other fields are ignored.
    """
    data_lines: List[str] = []
    for line in lines:
        if line is None:
            continue
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        line = line.rstrip("\r\n")
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line[len("data:"):].lstrip())
    if data_lines:
        yield "\n".join(data_lines)


class SseEventSource(EventSource):
    """Progress topic read from ``GET {base_url}/fetch/events``."""

    def __init__(
        self,
        base_url: str,
        max_reconnects: int = 3,
        reconnect_delay: float = 2.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = f"{base_url.rstrip('/')}/fetch/events"
        self.max_reconnects = max_reconnects
        self.reconnect_delay = reconnect_delay
        self._session = session or build_session()
        self._closed = False
        self._response: Optional[requests.Response] = None

    def subscribe(self) -> Iterator[ProgressEvent]:
        """Yield events until closed or until reconnection attempts run out.

        Returning (rather than raising) after the last attempt signals that
        the subscription is gone.
        """
        attempts = 0
        while not self._closed:
            try:
                self._response = self._session.get(
                    self.url,
                    stream=True,
                    headers={"Accept": "text/event-stream"},
                    timeout=(10, None),
                )
                self._response.raise_for_status()
                attempts = 0
                logger.info(f"Subscribed to progress events at {self.url}")

                for payload in iter_sse_payloads(self._response.iter_lines(decode_unicode=True)):
                    if self._closed:
                        return
                    try:
                        yield parse_progress_event(payload)
                    except ValueError as e:
                        logger.warning(f"Dropping malformed progress event: {e}")
            except requests.RequestException as e:
                logger.warning(f"Progress event stream failed: {e}")
            finally:
                if self._response is not None:
                    self._response.close()
                    self._response = None

            if self._closed:
                return
            attempts += 1
            if attempts > self.max_reconnects:
                logger.error(f"Giving up on progress event stream after {self.max_reconnects} reconnects")
                return
            logger.info(f"Reconnecting to progress events (attempt {attempts}/{self.max_reconnects})")
            time.sleep(self.reconnect_delay)

    def close(self) -> None:
        self._closed = True
        if self._response is not None:
            self._response.close()
