"""Protocol definitions for popgate.

This module defines the interfaces (protocols) the display gate depends on.
The gate never touches cookies, timers or the page directly; it is handed
implementations of these protocols instead.

These protocols enable:
- Swapping a browser cookie jar for an in-memory store in tests
- Driving timers from asyncio in the server and by hand in tests
- Rendering overlays over a websocket or into a recorder
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .config import PopupConfig


@runtime_checkable
class MarkerStore(Protocol):
    """Protocol for durable, per-browser keyed storage with expiry.

    Expiry is enforced by the store: entries older than their TTL read as absent.
    Implementations may raise on access when storage is unavailable.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None when absent or expired.

        Args:
            key: Marker key.

        Returns:
            The stored value, or None.
        """
        ...

    @abstractmethod
    def set(self, key: str, value: str, ttl_days: float) -> None:
        """Store a value, replacing any previous value and expiry.

        Args:
            key: Marker key.
            value: Value to store.
            ttl_days: Days until the entry expires. Zero means no explicit expiry.
        """
        ...


@runtime_checkable
class CancellationToken(Protocol):
    """Handle for a scheduled callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running. Safe to call more than once."""
        ...

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        """Return True once cancel() has been called."""
        ...


@runtime_checkable
class Scheduler(Protocol):
    """Protocol for one-shot delayed callbacks."""

    @abstractmethod
    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> CancellationToken:
        """Run callback once after delay_ms milliseconds.

        Args:
            delay_ms: Delay in milliseconds.
            callback: Zero-argument callable.

        Returns:
            Token that cancels the pending callback.
        """
        ...


@runtime_checkable
class OverlayRenderer(Protocol):
    """Protocol for putting an overlay in front of the user.

    The renderer owns presentation. It must call on_shown at most once, at the
    moment the overlay becomes visible, and never when it is not shown.
    """

    @abstractmethod
    def show(self, popup: PopupConfig, on_shown: Callable[[], None]) -> None:
        """Display the overlay described by popup.

        Args:
            popup: Popup configuration (dimensions, position, content).
            on_shown: Callback for the moment the overlay is visible.
        """
        ...
