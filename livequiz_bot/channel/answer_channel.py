"""
Audience answer channel.

Behavior:
- Push: accept messages from the trusted origin (and matching channel id),
  pull A/B/C/D answers out of their `messages` list.
- Dedup: one key set for the channel's whole lifetime; transports redeliver.
- Pull fallback: if nothing was pushed before the deadline, fetch
  `{endpoint}?cid=...` once. That payload only counts as "data received".
  A `timeout` of None turns the fallback off.
- Demo: optional generator of fake answers, independent of the real path.
- Every stream() consumer gets its own queue and sees every event.
- close() leaves no listener and no pending task behind.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import inspect
import logging
import random
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional, Set

import aiohttp
from yarl import URL

from livequiz_bot.channel.transport import InboundMessage, MessageHub
from livequiz_bot.trivia.constants import (
    ANONYMOUS_PARTICIPANT,
    DEMO_INTERVAL_SECONDS,
    DEMO_NAMES,
    FALLBACK_TIMEOUT_SECONDS,
    OPTION_LABELS,
)
from livequiz_bot.trivia.state import AnswerEvent, normalize_label

logger = logging.getLogger(__name__)

AnswerCallback = Callable[[AnswerEvent], None]
DataCallback = Callable[[Any], None]
ErrorCallback = Callable[["ChannelError"], None]

_STREAM_END = object()


class ChannelError(Exception):
    """The channel could not obtain any data (fallback fetch failed)."""


class ChannelStatus(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


def origin_of(base_url: str) -> str:
    try:
        return str(URL(base_url).origin())
    except ValueError:
        return base_url


def dedup_key_for(message: Mapping) -> str:
    who = message.get("user") or message.get("username") or "anon"
    ident = message.get("timestamp") or message.get("id") or uuid.uuid4().hex
    return f"{who}_{ident}"


class AnswerChannel:
    def __init__(
        self,
        channel_id: str,
        base_url: str = "https://tikfinity.zerody.one",
        *,
        endpoint: Optional[str] = None,
        origin: Optional[str] = None,
        relay_id: Optional[str] = None,
        timeout: Optional[float] = FALLBACK_TIMEOUT_SECONDS,
        demo_mode: bool = False,
        demo_interval: float = DEMO_INTERVAL_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
        rng: Optional[random.Random] = None,
    ):
        self.channel_id = str(channel_id)
        self.base_url = base_url.rstrip("/")
        # pushes must come from here; defaults to the widget's own origin
        self.origin = origin or origin_of(base_url)
        # pushes carry this cid; the fallback GET always asks for channel_id
        self.relay_id = str(relay_id) if relay_id is not None else self.channel_id
        self.endpoint = endpoint or f"{self.base_url}/widget/data"
        self.timeout = timeout
        self.demo_mode = demo_mode
        self.demo_interval = demo_interval

        self._session = session
        self._rng = rng or random.Random()

        self._status = ChannelStatus.IDLE
        self._transport: Optional[MessageHub] = None
        self._on_answer: Optional[AnswerCallback] = None
        self._on_data: Optional[DataCallback] = None
        self._on_error: Optional[ErrorCallback] = None

        self._seen: Set[str] = set()
        self._round_id = 0
        self._data_received = False
        self.last_payload: Any = None

        self._deadline_task: Optional[asyncio.Task] = None
        self._demo_task: Optional[asyncio.Task] = None
        self._demo_count = 0
        self._streams: Set[asyncio.Queue] = set()

    # -----------------------------
    # Lifecycle
    # -----------------------------

    @property
    def status(self) -> ChannelStatus:
        return self._status

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def open(
        self,
        transport: MessageHub,
        on_answer: Optional[AnswerCallback] = None,
        on_data: Optional[DataCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """Attach to the push transport and arm the fallback deadline. Needs a running loop."""
        if self._transport is not None:
            raise RuntimeError("Answer channel is already open.")
        if self._status is ChannelStatus.CLOSED:
            raise RuntimeError("Answer channel was closed; create a new one.")

        self._on_answer = on_answer
        self._on_data = on_data
        self._on_error = on_error

        self._transport = transport
        transport.add_listener(self.handle_message)
        self._status = ChannelStatus.LOADING
        if self.timeout is not None:
            self._deadline_task = asyncio.create_task(self._fallback_after_deadline())

        if self.demo_mode:
            self.start_demo()

        logger.info("Answer channel %s open (origin=%s)", self.channel_id, self.origin)

    def close(self) -> None:
        if self._status is ChannelStatus.CLOSED:
            return

        if self._transport is not None:
            self._transport.remove_listener(self.handle_message)
            self._transport = None

        self._cancel_deadline()
        self.stop_demo()

        self._status = ChannelStatus.CLOSED
        for queue in self._streams:
            queue.put_nowait(_STREAM_END)
        logger.info("Answer channel %s closed", self.channel_id)

    @contextlib.contextmanager
    def opened(self, transport: MessageHub, **callbacks):
        self.open(transport, **callbacks)
        try:
            yield self
        finally:
            self.close()

    def rearm(self, round_id: int) -> None:
        """Tag events from now on with a new round id. The dedup set is kept."""
        self._round_id = round_id

    def announce(self, send: Callable[[dict, str], Any]) -> None:
        """
        Handshake with the embedded widget once it reports being loaded.

        Fire-and-forget: failures are logged and dropped.
        """
        try:
            result = send({"type": "init", "cid": self.channel_id}, self.origin)
        except Exception as exc:
            logger.debug("Handshake to %s failed: %s", self.origin, exc)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            task.add_done_callback(self._log_handshake_result)

    def _log_handshake_result(self, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Handshake to %s failed: %s", self.origin, exc)

    # -----------------------------
    # Push path
    # -----------------------------

    def handle_message(self, message: InboundMessage) -> None:
        if self._transport is None:
            return
        if not message.origin or message.origin != self.origin:
            logger.debug("Dropping message from untrusted origin %r", message.origin)
            return

        payload = message.data
        if not isinstance(payload, Mapping):
            return

        cid = payload.get("cid") or payload.get("channelId")
        if cid and str(cid) != self.relay_id:
            logger.debug("Dropping message for channel %r", cid)
            return

        messages = payload.get("messages")
        if isinstance(messages, list):
            for entry in messages:
                if isinstance(entry, Mapping):
                    self._ingest(entry)

        self._receive_data(payload)

    def _ingest(self, entry: Mapping) -> None:
        key = dedup_key_for(entry)
        if key in self._seen:
            return
        self._seen.add(key)

        text = entry.get("text") or entry.get("content") or ""
        if not isinstance(text, str) or normalize_label(text) not in OPTION_LABELS:
            return

        participant = entry.get("user") or entry.get("username") or ANONYMOUS_PARTICIPANT
        self._emit(
            AnswerEvent(
                participant_id=str(participant),
                raw_text=text,
                observed_at=datetime.now(timezone.utc),
                dedup_key=key,
                round_id=self._round_id,
            )
        )

    def _receive_data(self, payload: Any) -> None:
        self._data_received = True
        self.last_payload = payload
        self._status = ChannelStatus.READY
        self._cancel_deadline()
        if self._on_data is not None:
            try:
                self._on_data(payload)
            except Exception:
                logger.exception("on_data callback failed")

    def _emit(self, event: AnswerEvent) -> None:
        logger.debug("Answer from %s: %s", event.participant_id, event.label)
        if self._on_answer is not None:
            try:
                self._on_answer(event)
            except Exception:
                logger.exception("on_answer callback failed for %s", event.dedup_key)
        for queue in self._streams:
            queue.put_nowait(event)

    # -----------------------------
    # Pull fallback
    # -----------------------------

    def _cancel_deadline(self) -> None:
        task = self._deadline_task
        self._deadline_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _fallback_after_deadline(self) -> None:
        await asyncio.sleep(self.timeout)
        if self._data_received or self._transport is None:
            return
        logger.info("No push from %s after %.1fs, fetching %s", self.origin, self.timeout, self.endpoint)
        await self.fetch()

    async def fetch(self) -> Any:
        """One GET against the fallback endpoint. Returns the payload or None on failure."""
        try:
            if self._session is not None:
                payload = await self._get(self._session)
            else:
                async with aiohttp.ClientSession() as session:
                    payload = await self._get(session)
        except ChannelError as exc:
            self._fail(exc)
            return None
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            self._fail(ChannelError(f"Fetch failed: {exc}"))
            return None

        if self._status is not ChannelStatus.CLOSED:
            self._receive_data(payload)
        return payload

    async def _get(self, session: aiohttp.ClientSession) -> Any:
        async with session.get(self.endpoint, params={"cid": self.channel_id}) as resp:
            if not 200 <= resp.status < 300:
                raise ChannelError(f"Fetch failed: {resp.status}")
            return await resp.json(content_type=None)

    def _fail(self, exc: "ChannelError") -> None:
        logger.warning("Answer channel %s: %s", self.channel_id, exc)
        if self._status is ChannelStatus.CLOSED:
            return
        self._status = ChannelStatus.ERROR
        if self._on_error is not None:
            try:
                self._on_error(exc)
            except Exception:
                logger.exception("on_error callback failed")

    # -----------------------------
    # Demo generator
    # -----------------------------

    @property
    def demo_running(self) -> bool:
        return self._demo_task is not None and not self._demo_task.done()

    def start_demo(self) -> None:
        if self.demo_running:
            return
        self._demo_task = asyncio.create_task(self._run_demo())

    def stop_demo(self) -> None:
        task = self._demo_task
        self._demo_task = None
        if task is not None and not task.done():
            task.cancel()

    async def _run_demo(self) -> None:
        while True:
            await asyncio.sleep(self.demo_interval)
            self._demo_count += 1
            name = self._rng.choice(DEMO_NAMES)
            answer = self._rng.choice(OPTION_LABELS)
            self._emit(
                AnswerEvent(
                    participant_id=name,
                    raw_text=answer,
                    observed_at=datetime.now(timezone.utc),
                    dedup_key=f"demo-{self._demo_count}",
                    round_id=self._round_id,
                    demo=True,
                )
            )

    # -----------------------------
    # Stream view
    # -----------------------------

    @property
    def stream_count(self) -> int:
        return len(self._streams)

    async def stream(self) -> AsyncIterator[AnswerEvent]:
        """
        Yield events emitted from now on until the channel closes.

        Each call gets its own queue, dropped again when the consumer stops.
        """
        if self._status is ChannelStatus.CLOSED:
            return
        queue: asyncio.Queue = asyncio.Queue()
        self._streams.add(queue)
        try:
            while True:
                item = await queue.get()
                if item is _STREAM_END:
                    return
                yield item
        finally:
            self._streams.discard(queue)
