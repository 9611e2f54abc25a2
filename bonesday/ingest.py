"""Live stream ingestion: decode pushed messages, classify them, update the store."""

from __future__ import annotations

import http.client
import json
import random
import socket
import threading
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Optional, Protocol, Sequence, Union

from loguru import logger

from . import rules, utils
from .store import VibeStore

DEFAULT_STREAM_URL = "https://stream.twitter.com/1.1/statuses/filter.json"

# The stream sends a keep-alive newline every ~30s; three missed means stalled.
STALL_TIMEOUT = 90.0

# Disconnect notice codes that mean the credentials are no longer usable.
AUTH_DISCONNECT_CODES = {6, 7}


class StreamError(Exception):
    """A transient stream failure; the ingester reconnects."""


class StreamAuthError(StreamError):
    """The stream rejected our credentials; retrying will not help."""


@dataclass(frozen=True)
class ContentMessage:
    text: str
    created_at: datetime
    is_reshare: bool = False
    is_quote: bool = False
    is_reply_to_other: bool = False


@dataclass(frozen=True)
class Heartbeat:
    pass


@dataclass(frozen=True)
class Disconnect:
    code: int
    reason: str


Message = Union[ContentMessage, Heartbeat, Disconnect]


def _status_text(obj: Dict[str, Any]) -> Optional[str]:
    extended = obj.get("extended_tweet")
    if isinstance(extended, dict) and isinstance(extended.get("full_text"), str):
        return extended["full_text"]
    for key in ("full_text", "text"):
        if isinstance(obj.get(key), str):
            return obj[key]
    return None


def _is_reply_to_other(obj: Dict[str, Any]) -> bool:
    if obj.get("in_reply_to_status_id") is None and obj.get("in_reply_to_status_id_str") is None:
        return False
    author = (obj.get("user") or {}).get("id")
    return author is None or obj.get("in_reply_to_user_id") != author


def _has_valid_shape(obj: Dict[str, Any]) -> bool:
    # nested objects we read from must be objects when present
    for key in ("user", "extended_tweet"):
        if obj.get(key) is not None and not isinstance(obj[key], dict):
            return False
    return True


def parse_message(line: Union[str, bytes]) -> Optional[Message]:
    """
    Decode one line of the stream.

    Returns None for anything we do not act on (delete and limit notices,
    unknown shapes, malformed JSON); those are logged, never raised.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return Heartbeat()

    try:
        obj = json.loads(line)
    except json.JSONDecodeError as e:
        logger.warning(f"Skipping malformed stream line: {e}")
        return None
    if not isinstance(obj, dict):
        logger.warning(f"Skipping unexpected stream payload of type {type(obj).__name__}")
        return None

    notice = obj.get("disconnect")
    if isinstance(notice, dict):
        try:
            code = int(notice.get("code", 0))
        except (TypeError, ValueError):
            code = 0
        return Disconnect(code=code, reason=str(notice.get("reason") or ""))

    if not _has_valid_shape(obj):
        logger.warning(f"Skipping status with malformed nested fields: {line[:200]}")
        return None

    text = _status_text(obj)
    if text is None:
        logger.debug(f"Ignoring non-status message with keys {sorted(obj)[:5]}")
        return None

    created_at = utils.parse_created_at(obj.get("created_at"))
    if created_at is None:
        logger.warning(f"Skipping status without a usable created_at: {obj.get('created_at')!r}")
        return None

    return ContentMessage(
        text=text,
        created_at=created_at,
        is_reshare="retweeted_status" in obj,
        is_quote=bool(obj.get("is_quote_status")) or "quoted_status" in obj,
        is_reply_to_other=_is_reply_to_other(obj),
    )


def is_eligible(msg: ContentMessage) -> bool:
    """Only original, standalone posts carry a reading."""
    return not (msg.is_reshare or msg.is_quote or msg.is_reply_to_other)


class RetryPolicy:
    """Bounded exponential backoff with jitter."""

    def __init__(self, base_delay: float = 1.0, max_delay: float = 320.0,
                 exponential_base: float = 2.0, jitter: bool = True):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def calculate_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random() / 2)
        return delay


class StreamConnection(Protocol):
    def __iter__(self) -> Iterator[Union[str, bytes]]: ...

    def close(self) -> None: ...


class StreamConnector(Protocol):
    def open(self) -> StreamConnection: ...


class HttpStreamConnection:
    def __init__(self, response: Any):
        self._response = response

    def __iter__(self) -> Iterator[bytes]:
        try:
            for raw in self._response:
                yield raw
        except (OSError, http.client.HTTPException) as e:
            raise StreamError(f"{type(e).__name__}: {e}") from e

    def close(self) -> None:
        # Closing the response alone does not wake a recv() blocked in another
        # thread; shutting the socket down does.
        sock = getattr(getattr(getattr(self._response, "fp", None), "raw", None), "_sock", None)
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug(f"Socket shutdown failed: {e}")
        self._response.close()


class HttpStreamConnector:
    """
    Opens the filtered status stream over HTTP.

    The account and language filters are fixed for the life of the connector.
    A read that stalls for `stall_timeout` seconds surfaces as a StreamError.
    """

    def __init__(self, bearer_token: str, follow: Sequence[str], language: Sequence[str] = ("en",),
                 url: str = DEFAULT_STREAM_URL, stall_timeout: float = STALL_TIMEOUT):
        self.bearer_token = bearer_token
        self.follow = [f for f in follow if f]
        self.language = [lang for lang in language if lang]
        self.url = url
        self.stall_timeout = stall_timeout

    def build_url(self) -> str:
        params = {"delimited": "false", "stall_warnings": "true"}
        if self.follow:
            params["follow"] = ",".join(self.follow)
        if self.language:
            params["language"] = ",".join(self.language)
        return f"{self.url}?{urllib.parse.urlencode(params)}"

    def open(self) -> HttpStreamConnection:
        req = urllib.request.Request(
            self.build_url(),
            headers={
                "Authorization": f"Bearer {self.bearer_token}",
                "User-Agent": "Bones-Dash/1.0",
                "Accept": "application/json",
            },
        )
        try:
            response = urllib.request.urlopen(req, timeout=self.stall_timeout)
        except urllib.error.HTTPError as e:
            if e.code in (401, 403):
                raise StreamAuthError(f"HTTP {e.code}: {e.reason}") from e
            raise StreamError(f"HTTP {e.code}: {e.reason}") from e
        except urllib.error.URLError as e:
            raise StreamError(f"Network error: {e.reason}") from e
        except OSError as e:
            raise StreamError(f"{type(e).__name__}: {e}") from e
        return HttpStreamConnection(response)


class IngesterState(Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"
    TERMINATED = "terminated"
    FAILED = "failed"


class StreamIngester:
    """
    Keeps the store fresh from the live stream.

    Runs on its own thread. Transport failures reconnect with backoff; an
    authentication failure stops this thread only and is reported through
    get_status(). Request handlers keep serving the last record either way.
    """

    def __init__(self, store: VibeStore, connector: StreamConnector,
                 retry_policy: Optional[RetryPolicy] = None,
                 stop_event: Optional[threading.Event] = None):
        self.store = store
        self.connector = connector
        self.retry_policy = retry_policy or RetryPolicy()
        self._stop_event = stop_event or threading.Event()
        self._status_lock = threading.Lock()
        self._connection: Optional[StreamConnection] = None
        self._thread: Optional[threading.Thread] = None
        self.session_messages = 0
        self._status: Dict[str, Any] = {
            "state": IngesterState.CONNECTING.value,
            "connected_since_utc": None,
            "last_activity_utc": None,
            "last_message_utc": None,
            "last_error": None,
            "reconnects": 0,
            "messages_classified": 0,
            "messages_skipped": 0,
        }

    # -- status -----------------------------------------------------------

    @property
    def state(self) -> IngesterState:
        with self._status_lock:
            return IngesterState(self._status["state"])

    def get_status(self) -> Dict[str, Any]:
        with self._status_lock:
            return self._status.copy()

    def _update(self, **fields: Any) -> None:
        with self._status_lock:
            self._status.update(fields)

    def _bump(self, key: str) -> None:
        with self._status_lock:
            self._status[key] += 1

    def _set_state(self, state: IngesterState) -> None:
        self._update(state=state.value)

    def _touch(self) -> None:
        self._update(last_activity_utc=utils.utcnow().isoformat())

    # -- message handling -------------------------------------------------

    def handle_message(self, msg: Message) -> bool:
        """Apply one decoded message. Returns True if the store was written."""
        if isinstance(msg, Disconnect):
            detail = f"Disconnect notice {msg.code}: {msg.reason}"
            if msg.code in AUTH_DISCONNECT_CODES:
                raise StreamAuthError(detail)
            raise StreamError(detail)

        self._touch()
        if isinstance(msg, Heartbeat):
            return False

        if not is_eligible(msg):
            self._bump("messages_skipped")
            logger.debug("Skipping reshare/quote/reply")
            return False

        vibe = rules.classify(msg.text)
        record = self.store.write(vibe, msg.created_at)
        self._bump("messages_classified")
        self._update(last_message_utc=record.observed_at.isoformat())
        logger.info(f"Stream post classified as {vibe.value} (created {record.observed_at.isoformat()})")
        return True

    def consume(self, lines: Iterable[Union[str, bytes]]) -> int:
        """
        Process lines until the stream ends or stop is requested.

        Returns the messages seen on this connection. The running count is
        also kept in `session_messages` so it survives a raised disconnect.
        """
        self.session_messages = 0
        for line in lines:
            if self._stop_event.is_set():
                break
            msg = parse_message(line)
            if msg is None:
                self._bump("messages_skipped")
                continue
            self.session_messages += 1
            self.handle_message(msg)
        return self.session_messages

    # -- lifecycle --------------------------------------------------------

    def run(self) -> None:
        attempt = 0
        while not self._stop_event.is_set():
            self._set_state(IngesterState.CONNECTING)
            error: Optional[str] = None
            try:
                conn = self.connector.open()
            except StreamAuthError as e:
                self._fail(e)
                return
            except StreamError as e:
                error = str(e)
            except Exception as e:
                logger.exception("Unexpected error opening stream")
                error = f"{type(e).__name__}: {e}"
            else:
                with self._status_lock:
                    self._connection = conn
                if self._stop_event.is_set():
                    self._close_connection()
                    break
                self._set_state(IngesterState.STREAMING)
                self._update(connected_since_utc=utils.utcnow().isoformat())
                logger.info("Connected to stream")
                self.session_messages = 0
                try:
                    self.consume(conn)
                    error = "stream ended"
                except StreamAuthError as e:
                    self._fail(e)
                    return
                except (StreamError, OSError, ValueError) as e:
                    error = str(e)
                except Exception as e:
                    logger.exception("Unexpected error while streaming")
                    error = f"{type(e).__name__}: {e}"
                finally:
                    self._close_connection()
                # a connection that delivered anything counts as healthy
                if self.session_messages:
                    attempt = 0

            if self._stop_event.is_set():
                break

            delay = self.retry_policy.calculate_delay(attempt)
            attempt += 1
            self._set_state(IngesterState.DISCONNECTED)
            self._update(last_error=error, connected_since_utc=None)
            self._bump("reconnects")
            logger.warning(f"Stream disconnected ({error}); reconnecting in {delay:.1f}s")
            self._stop_event.wait(delay)

        self._set_state(IngesterState.TERMINATED)
        logger.info("Stream ingester stopped")

    def _fail(self, error: StreamAuthError) -> None:
        self._update(state=IngesterState.FAILED.value, last_error=str(error), connected_since_utc=None)
        logger.error(f"Stream authentication failed, ingester giving up: {error}")

    def _close_connection(self) -> None:
        with self._status_lock:
            conn, self._connection = self._connection, None
        if conn is not None:
            try:
                conn.close()
            except OSError as e:
                logger.debug(f"Error closing stream connection: {e}")

    def start(self) -> threading.Thread:
        if self._thread and self._thread.is_alive():
            return self._thread
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="stream-ingester", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        self._close_connection()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout)
            if self._thread.is_alive():
                # run() marks itself TERMINATED once its pending read returns
                logger.warning(f"Stream ingester did not stop within {timeout}s")
                return
        if self.state is not IngesterState.FAILED:
            self._set_state(IngesterState.TERMINATED)
