"""
Named publish/subscribe bus.

Provides:
- Stream: hot multicast stream with synchronous delivery
- Channel: a Stream registered under a name
- ChannelRegistry: process-wide, lazily populated map of channels
- Observable: lazy handle that attaches to a channel on subscribe

Channels are created on first use and never torn down. Subscribers are
released individually through the callable returned by subscribe().
Subscriber errors reach the publisher, but only after delivery completes.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class Stream(Generic[T]):
    """
    Hot multicast stream.

    Values are delivered synchronously to every current subscriber,
    in subscription order. Late subscribers see no past values.

    Example:
        >>> s = Stream()
        >>> unsubscribe = s.subscribe(print)
        >>> s.emit("hello")
        hello
        >>> unsubscribe()
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._subscribers: List[Callable[[T], None]] = []

    def emit(self, value: T) -> None:
        """
        Deliver a value to every current subscriber.

        A subscriber that raises does not cut off the ones after it. The
        first error is re-raised once every subscriber has been called.
        """
        error: Optional[Exception] = None
        with self._lock:
            for sub in list(self._subscribers):
                try:
                    sub(value)
                except Exception as e:
                    if error is None:
                        error = e
        if error is not None:
            raise error

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        """
        Subscribe to values emitted from now on.

        Returns:
            Unsubscribe function
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


class Channel(Stream[T]):
    """A stream registered under a name in a ChannelRegistry."""

    def __init__(self, name: str):
        super().__init__()
        self.name = name

    def __repr__(self) -> str:
        return f"Channel({self.name!r}, subscribers={self.subscriber_count})"


class ChannelRegistry:
    """Process-wide registry of named channels."""

    def __init__(self):
        self._lock = threading.Lock()
        self._channels: Dict[str, Channel] = {}

    def channel(self, name: str) -> Channel:
        """Get the channel for a name, creating it on first use."""
        with self._lock:
            channel = self._channels.get(name)
            if channel is None:
                channel = Channel(name)
                self._channels[name] = channel
                logger.debug(f"Created channel {name}")
            return channel

    def publish(self, name: str, value) -> bool:
        """
        Publish a value under a name.

        Returns:
            True once delivery was attempted, whether or not anyone listened
        """
        self.channel(name).emit(value)
        return True

    def subscribe(self, name: str, callback: Callable) -> Unsubscribe:
        """Subscribe to values published under a name from now on."""
        return self.channel(name).subscribe(callback)

    def names(self) -> List[str]:
        """List names of all channels created so far."""
        with self._lock:
            return sorted(self._channels)


class Observable(Generic[T]):
    """
    Lazy handle over a named channel.

    Nothing is attached until subscribe() is called; each subscriber
    attaches independently and receives every value published afterwards.
    """

    def __init__(self, name: str, registry: "ChannelRegistry | None" = None):
        self.name = name
        self._registry = registry

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        registry = self._registry or get_registry()
        return registry.subscribe(self.name, callback)

    def __repr__(self) -> str:
        return f"Observable({self.name!r})"


# Global registry (one logical channel per name within the process)
_registry = ChannelRegistry()


def get_registry() -> ChannelRegistry:
    """Get the process-wide channel registry."""
    return _registry


def publish(name: str, value) -> bool:
    """Publish a value on the process-wide registry."""
    return _registry.publish(name, value)


def subscribe(name: str, callback: Callable) -> Unsubscribe:
    """Subscribe on the process-wide registry."""
    return _registry.subscribe(name, callback)
