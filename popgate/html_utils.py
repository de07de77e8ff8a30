"""HTML utility functions for popgate.

This module provides the small amount of HTML string handling popgate needs:
escaping attribute values, building the anchor-wrapped image used as popup
content, and injecting scripts into served pages.

Functions:
    escape_html: Escape special HTML characters in a string.
    anchor_image: Build a link wrapping an image.
    inject_before_body_close: Insert a snippet before </body>.
"""

from __future__ import annotations


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Converts the following characters to their HTML entity equivalents:
    - & becomes &amp;
    - < becomes &lt;
    - > becomes &gt;
    - " becomes &quot;

    Args:
        text: The string to escape.

    Returns:
        The escaped string, safe for inclusion in HTML.

    Examples:
        >>> escape_html('<script>alert("XSS")</script>')
        '&lt;script&gt;alert(&quot;XSS&quot;)&lt;/script&gt;'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def anchor_image(href: str, src: str, alt: str = "", width: int | None = None) -> str:
    """Build an `<a>` element wrapping an `<img>`.

    Args:
        href: Link target.
        src: Image URL.
        alt: Image alt text.
        width: Optional image width attribute.

    Returns:
        HTML string.

    Examples:
        >>> anchor_image("https://example.com", "/ad.png", "Ad", 300)
        '<a href="https://example.com"><img width="300" alt="Ad" src="/ad.png"/></a>'
    """
    width_attr = f' width="{width}"' if width else ""
    return (
        f'<a href="{escape_html(href)}">'
        f'<img{width_attr} alt="{escape_html(alt)}" src="{escape_html(src)}"/></a>'
    )


def inject_before_body_close(html: str, snippet: str) -> str:
    """Insert snippet before the last </body>, or append it when there is none.

    Args:
        html: Page HTML.
        snippet: Markup to insert.

    Returns:
        HTML with the snippet included.
    """
    index = html.rfind("</body>")
    if index == -1:
        return html + snippet
    return html[:index] + snippet + html[index:]
