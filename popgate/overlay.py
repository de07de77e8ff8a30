"""Overlay payloads for popgate.

Popups are displayed in the browser by the jQuery cornerpopup widget. This
module turns a PopupConfig into the widget's options and renders the client
script that connects a page to the preview server's gate.

Key functions:
- popup_content: HTML shown inside the popup.
- cornerpopup_options: Widget options for a popup.
- render_client_script: Page-side script talking to the gate websocket.
"""

from __future__ import annotations

from typing import Any

from jinja2 import Environment
from markupsafe import Markup

from .config import PopupConfig
from .html_utils import anchor_image

_CLIENT_SCRIPT = """
<script>
(() => {
  const ws = new WebSocket('ws://' + location.hostname + ':{{ ws_port }}');
  const send = (message) => ws.send(JSON.stringify(message));
  ws.onopen = () => {
    send({type: 'ready', cookie: navigator.cookieEnabled ? document.cookie : null, path: location.pathname});
  };
  ws.onmessage = (event) => {
    const data = JSON.parse(event.data || '{}');
    if (data.type === 'popup') {
      if (!window.jQuery || !jQuery.fn.cornerpopup) return;
      jQuery.fn.cornerpopup(Object.assign({}, data.options, {
        afterPopup: () => send({type: 'shown', key: data.key})
      }));
    } else if (data.type === 'marker') {
      document.cookie = data.cookie;
    } else if (data.type === 'reload') {
      location.reload();
    }
  };
})();
</script>
"""

_env = Environment(autoescape=False)


def popup_content(popup: PopupConfig) -> str:
    """Return the popup's HTML payload.

    Raw `content` wins; otherwise a `link` plus `image` pair becomes an
    anchor-wrapped image.
    """
    if popup.content:
        return popup.content
    if popup.link and popup.image:
        return anchor_image(popup.link, popup.image, popup.alt, popup.image_width)
    return ""


def cornerpopup_options(popup: PopupConfig) -> dict[str, Any]:
    """Build cornerpopup widget options for a popup.

    The widget's own delay is zero: the gate has already waited delay_ms
    before asking for the popup.
    """
    return {
        "delay": 0,
        "variant": popup.variant,
        "slide": popup.slide,
        "width": popup.width,
        "height": popup.height,
        "position": popup.position,
        "iconColor": popup.icon_color,
        "header": popup.header,
        "content": popup_content(popup),
    }


def render_client_script(ws_port: int) -> Markup:
    """Render the page-side gate script for a websocket port."""
    template = _env.from_string(_CLIENT_SCRIPT)
    return Markup(template.render(ws_port=int(ws_port)))
