from popgate.config import PopupConfig
from popgate.html_utils import anchor_image, escape_html, inject_before_body_close
from popgate.overlay import cornerpopup_options, popup_content, render_client_script


def test_escape_html():
    assert escape_html('<a href="x">&</a>') == "&lt;a href=&quot;x&quot;&gt;&amp;&lt;/a&gt;"


def test_anchor_image():
    assert anchor_image("https://example.com/?a=1&b=2", "/ad.png") == (
        '<a href="https://example.com/?a=1&amp;b=2"><img alt="" src="/ad.png"/></a>'
    )
    assert 'width="600"' in anchor_image("/", "/x.png", "X", 600)


def test_inject_before_body_close():
    assert inject_before_body_close("<body>hi</body></html>", "<s/>") == "<body>hi<s/></body></html>"
    assert inject_before_body_close("<p>no body</p>", "<s/>") == "<p>no body</p><s/>"


def test_popup_content_prefers_raw_content():
    assert popup_content(PopupConfig(content="<b>hi</b>", link="/", image="/a.png")) == "<b>hi</b>"
    linked = popup_content(PopupConfig(link="/promo", image="/a.png", alt="Promo", image_width=600))
    assert linked == '<a href="/promo"><img width="600" alt="Promo" src="/a.png"/></a>'
    assert popup_content(PopupConfig(link="/promo")) == ""


def test_cornerpopup_options():
    options = cornerpopup_options(PopupConfig(content="hello", height="600px"))
    assert options == {
        "delay": 0,
        "variant": 10,
        "slide": 1,
        "width": "600px",
        "height": "600px",
        "position": "left",
        "iconColor": "#000000",
        "header": "",
        "content": "hello",
    }


def test_client_script_targets_ws_port():
    script = str(render_client_script(5123))
    assert ":5123'" in script
    assert "type: 'ready'" in script
    assert "navigator.cookieEnabled" in script
    assert "afterPopup" in script
    assert "document.cookie = data.cookie" in script
    assert script.strip().startswith("<script>")
