# livequiz_bot/channel/transport.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    """A pushed message as it arrives: who sent it and what it carries."""

    origin: str
    data: Any


Listener = Callable[[InboundMessage], None]


class MessageHub:
    """
    In-process push transport.

    Producers (the Discord relay, a widget bridge, tests) publish; answer
    channels attach a listener for as long as they are open.
    """

    def __init__(self):
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, message: InboundMessage) -> None:
        # copy: a listener may detach itself while handling
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Listener failed on message from %s", message.origin)
