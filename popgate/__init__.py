"""popgate: cookie-gated popups for static sites.

This package decides, per browser, whether a promotional popup should be
shown on a page view. A popup shows after a fixed delay and, once visible,
writes a marker cookie that suppresses it for a cooldown window.

The display gate works against small protocols (marker store, scheduler,
overlay renderer) so it runs the same in the preview server, where pages
talk to it over a websocket, and in tests with fakes.

Modules:
- gate: The display gate and popup chains.
- stores: In-memory and cookie-backed marker stores.
- scheduling: asyncio timers with cancellation tokens.
- overlay: Popup widget options and the page-side client script.
- server: Preview server serving a built site with gating.
- cli: The `popgate` command.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
