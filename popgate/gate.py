"""Display gate for popgate.

The gate decides, once per page load, whether a popup should be shown. A
popup is shown at most once per cooldown window per browser: showing it
writes a suppression marker, and while that marker is alive the gate does
nothing.

Nothing raised by a collaborator ever leaves the gate. Storage read errors
count as "no marker" (fail open); write and render errors are logged and
dropped. The worst case is a popup that shows again on the next load.

Key classes:
- GateState: Lifecycle of one gate during one page load.
- DisplayGate: Reads the marker, arms the delay timer, writes the marker on show.

Key functions:
- build_chain: Links gates so each popup is evaluated after the previous one.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

import structlog

from .config import PopupConfig
from .protocols import CancellationToken, MarkerStore, OverlayRenderer, Scheduler

logger = structlog.get_logger()


class GateState(str, Enum):
    UNCHECKED = "unchecked"
    SUPPRESSED = "suppressed"
    ARMED = "armed"
    RENDERING = "rendering"
    DISPLAYED = "displayed"
    MARKER_WRITTEN = "marker_written"
    CANCELLED = "cancelled"


class DisplayGate:
    """Cookie-gated, delayed display of one popup.

    Attributes:
        popup: Popup configuration.
        store: Marker store for this browser.
        scheduler: Timer source.
        renderer: Overlay renderer.
        then: Gate to evaluate once this one is settled, or None.
        state: Current GateState.
    """

    def __init__(
        self,
        popup: PopupConfig,
        store: MarkerStore,
        scheduler: Scheduler,
        renderer: OverlayRenderer,
        then: DisplayGate | None = None,
    ):
        self.popup = popup
        self.store = store
        self.scheduler = scheduler
        self.renderer = renderer
        self.then = then
        self.state = GateState.UNCHECKED
        self._token: CancellationToken | None = None
        self._log = logger.bind(popup=popup.name, key=popup.key)

    def on_page_ready(self) -> None:
        """Entry point for a page load. Later calls are ignored."""
        if self.state is not GateState.UNCHECKED:
            return
        if self._marker_present():
            self.state = GateState.SUPPRESSED
            self._log.debug("popup suppressed")
            self._start_next()
            return
        try:
            self._token = self.scheduler.schedule(self.popup.delay_ms, self._fire)
        except Exception as exc:
            self._log.warning("failed to arm popup timer", error=str(exc))
            return
        self.state = GateState.ARMED
        self._log.debug("popup armed", delay_ms=self.popup.delay_ms)

    evaluate_and_maybe_schedule = on_page_ready

    def unload(self) -> None:
        """Page is going away: cancel a pending timer, never write the marker."""
        if self.state is GateState.ARMED and self._token is not None:
            self._token.cancel()
            self.state = GateState.CANCELLED
            self._log.debug("popup cancelled before display")
        if self.then is not None:
            self.then.unload()

    def _marker_present(self) -> bool:
        try:
            return self.store.get(self.popup.key) is not None
        except Exception as exc:
            self._log.warning("marker read failed; treating as absent", error=str(exc))
            return False

    def _fire(self) -> None:
        if self.state is not GateState.ARMED:
            return
        self.state = GateState.RENDERING
        try:
            self.renderer.show(self.popup, self._after_popup)
        except Exception as exc:
            self._log.warning("overlay renderer failed", error=str(exc))

    def _after_popup(self) -> None:
        if self.state is not GateState.RENDERING:
            return
        self.state = GateState.DISPLAYED
        try:
            self.store.set(self.popup.key, self.popup.marker_value, self.popup.cooldown_days)
        except Exception as exc:
            self._log.warning("marker write failed", error=str(exc))
        else:
            self.state = GateState.MARKER_WRITTEN
            self._log.info("popup shown", cooldown_days=self.popup.cooldown_days)
        self._start_next()

    def _start_next(self) -> None:
        if self.then is not None:
            self.then.on_page_ready()


def build_chain(
    popups: Iterable[PopupConfig],
    store: MarkerStore,
    scheduler: Scheduler,
    renderer: OverlayRenderer,
) -> DisplayGate | None:
    """Build linked gates for popups, returning the first one (or None)."""
    head: DisplayGate | None = None
    for popup in reversed(list(popups)):
        head = DisplayGate(popup, store, scheduler, renderer, then=head)
    return head
