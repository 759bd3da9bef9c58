"""InfluxDB 1.x HTTP line-protocol write client.

Writes go to the ``/write`` endpoint through one persistent
``httpx.AsyncClient``.  Each ``write`` call serializes its batch into the
client's reusable buffer, submits the POST as a background task and returns
without waiting for the response; the outcome only shows up in the logs.

The target database is created lazily with ``CREATE DATABASE`` on the
``/query`` endpoint.  That call is awaited, since nothing can be written
before it succeeds, and is retried at the start of every write until it has
succeeded once.
"""

from __future__ import annotations

import asyncio
import base64
import enum
import logging
import re
from collections.abc import Callable, Sequence
from types import TracebackType

import httpx

from influx_bridge.clients.line_protocol import LineEncoder, Point
from influx_bridge.config import Settings

logger = logging.getLogger(__name__)

WRITE_SUCCESS_CODES = frozenset({200, 204})

_PLAIN_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class InfluxDBError(Exception):
    """Raised when a write cannot be submitted to InfluxDB."""


class DatabaseState(enum.Enum):
    NOT_READY = "not_ready"
    READY = "ready"


def next_database_state(current: DatabaseState, created: bool) -> DatabaseState:
    """Transition rule for the database gate.  ``READY`` is sticky."""
    if current is DatabaseState.READY or created:
        return DatabaseState.READY
    return DatabaseState.NOT_READY


class ResponseState(enum.Enum):
    SUBMITTED = "submitted"
    STATUS_RECEIVED = "status_received"
    COMPLETED = "completed"
    FAILED = "failed"


def is_write_success(status_code: int) -> bool:
    return status_code in WRITE_SUCCESS_CODES


def is_2xx(status_code: int) -> bool:
    return 200 <= status_code < 300


class ResponseClassifier:
    """Observes exactly one in-flight request and turns it into a bool.

    Failures end in a single warning and a ``False`` result; nothing is
    raised past this class.
    """

    def __init__(self, is_success: Callable[[int], bool] = is_write_success) -> None:
        self.state = ResponseState.SUBMITTED
        self._is_success = is_success

    def on_error(self, exc: BaseException) -> bool:
        logger.warning("Cannot establish connection to InfluxDB: %s", exc)
        self.state = ResponseState.FAILED
        return False

    def on_status(self, response: httpx.Response) -> None:
        if self._is_success(response.status_code):
            self.state = ResponseState.STATUS_RECEIVED
            return
        logger.warning(
            "Unexpected response status from InfluxDB '%s' - '%s' Uri: %s",
            response.status_code,
            response.reason_phrase,
            response.request.url,
        )
        self.state = ResponseState.FAILED

    def on_completed(self) -> bool:
        """Final outcome.  A request that completed without a status counts as a success."""
        if self.state is ResponseState.FAILED:
            return False
        self.state = ResponseState.COMPLETED
        return True


def _validate_url(url: str) -> None:
    """Raise ``InfluxDBError`` unless *url* is an absolute http(s) URL."""
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise InfluxDBError(f"Invalid InfluxDB URL {url!r}: {exc}") from exc
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise InfluxDBError(f"Invalid InfluxDB URL {url!r}")


def _quote_identifier(name: str) -> str:
    if _PLAIN_IDENTIFIER_RE.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class InfluxDBClient:
    """Async fire-and-forget client for the InfluxDB 1.x ``/write`` endpoint.

    One instance is meant to be driven by a single caller on a single event
    loop: the encoder buffer and the database state are not locked.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Wire the client from *settings*; no request is sent here.

        Args:
            settings:  Read-only configuration (endpoint, credentials,
                       database, retention, consistency, default tags).
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.

        Raises:
            InfluxDBError: if the connect string is not an http(s) URL.
        """
        self._settings = settings
        self._url = settings.influx_connect_string.rstrip("/")
        _validate_url(self._url)
        self._database = settings.influx_database
        self._retention = settings.influx_retention or None
        self._consistency = settings.influx_consistency or None
        self._tags = dict(settings.influx_tags)
        self._credentials = base64.b64encode(
            f"{settings.influx_username}:{settings.influx_password}".encode()
        ).decode("ascii")
        self._http = httpx.AsyncClient(timeout=settings.influx_timeout, transport=transport)
        self._encoder = LineEncoder(settings.influx_buffer_size)
        self._state = DatabaseState.NOT_READY
        self._pending: set[asyncio.Task[bool]] = set()

    @classmethod
    async def connect(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> InfluxDBClient:
        """Build a client from *settings* and attempt to create its database.

        A failed attempt does not prevent construction; the next ``write``
        tries again.
        """
        client = cls(settings, transport=transport)
        await client.ensure_database()
        return client

    async def __aenter__(self) -> InfluxDBClient:
        await self.ensure_database()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def is_ready(self) -> bool:
        return self._state is DatabaseState.READY

    @property
    def pending(self) -> int:
        """Number of writes submitted but not yet completed."""
        return len(self._pending)

    # ── Database initialization ──────────────────────────────────────────────

    async def ensure_database(self) -> bool:
        """Run ``CREATE DATABASE`` and wait for the answer.

        Returns the (sticky) ready flag.  Transport errors and non-2xx
        statuses are logged and leave the client not ready, as does calling
        this on a closed client.
        """
        if self._http.is_closed:
            logger.error(
                "Cannot create database %s: InfluxDB client is closed", self._database
            )
            return self.is_ready
        logger.info("Attempt to create InfluxDB database %s", self._database)
        request = self._http.build_request(
            "GET",
            f"{self._url}/query",
            params={"q": f"CREATE DATABASE {_quote_identifier(self._database)}"},
            headers=self._auth_headers(),
        )
        created = await self._execute(request, ResponseClassifier(is_success=is_2xx))
        self._state = next_database_state(self._state, created)
        if created:
            logger.info("InfluxDB database %s is ready", self._database)
        else:
            logger.error("Cannot create database %s", self._database)
        return self.is_ready

    # ── Writes ───────────────────────────────────────────────────────────────

    async def write(self, points: Sequence[Point]) -> asyncio.Task[bool] | None:
        """Submit *points* and return without waiting for InfluxDB.

        Returns the task carrying the delivery outcome, or ``None`` when the
        batch was dropped because the database could not be created.

        Raises:
            InfluxDBError: if the request cannot be built or the client is
                closed.  Failures reported by the server are only logged.
        """
        if self._http.is_closed:
            raise InfluxDBError("InfluxDB client is closed")
        if not self.is_ready and not await self.ensure_database():
            logger.warning(
                "InfluxDB database %s not ready – dropping %d point(s).",
                self._database,
                len(points),
            )
            return None

        payload = self._encoder.encode(points, self._tags)
        request = self._build_write_request(payload)
        task = asyncio.create_task(self._execute(request, ResponseClassifier()))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.debug(
            "Submitted %d point(s) (%d bytes) to InfluxDB.", len(points), len(payload)
        )
        return task

    async def flush(self) -> None:
        """Wait for every in-flight write; outcomes are discarded."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Drain in-flight writes and close the transport.  Safe to call twice."""
        await self.flush()
        await self._http.aclose()

    # ── Internal helpers ─────────────────────────────────────────────────────

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Basic {self._credentials}"}

    def _build_write_request(self, payload: bytes) -> httpx.Request:
        params = {"db": self._database, "precision": "ms"}
        if self._retention:
            params["rp"] = self._retention
        if self._consistency:
            params["consistency"] = self._consistency

        url = f"{self._url}/write"
        _validate_url(url)
        return self._http.build_request(
            "POST",
            url,
            params=params,
            headers={
                **self._auth_headers(),
                "Content-Type": "text/plain; charset=utf-8",
            },
            content=payload,
        )

    async def _execute(
        self, request: httpx.Request, classifier: ResponseClassifier
    ) -> bool:
        try:
            response = await self._http.send(request)
        except httpx.HTTPError as exc:
            return classifier.on_error(exc)
        classifier.on_status(response)
        return classifier.on_completed()
