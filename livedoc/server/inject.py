"""Reload client script and its injection into HTML pages."""

from __future__ import annotations

import re

WS_PATH = "/__livedoc/ws"
SCRIPT_PATH = "/__livedoc/livereload.js"

RELOAD_JS = """\
(function () {
  if (window.__LIVEDOC__) return;
  window.__LIVEDOC__ = true;
  var delay = 500;
  function connect() {
    var proto = location.protocol === "https:" ? "wss://" : "ws://";
    var ws = new WebSocket(proto + location.host + "%s");
    ws.onopen = function () { delay = 500; };
    ws.onmessage = function (msg) {
      if (msg.data === "reload") location.reload();
    };
    ws.onclose = function () {
      setTimeout(connect, delay);
      delay = Math.min(delay * 2, 5000);
    };
  }
  connect();
})();
""" % WS_PATH

SCRIPT_TAG = f'<script src="{SCRIPT_PATH}"></script>'

_BODY_END = re.compile(rb"</body\s*>", re.IGNORECASE)


def inject_reload_script(html: bytes) -> bytes:
    """
    Insert the reload ``<script>`` before the last ``</body>`` tag.

    Pages without a closing body tag get the script appended.  Pages that
    already reference the script are returned unchanged.
    """
    tag = SCRIPT_TAG.encode()
    if tag in html:
        return html
    matches = list(_BODY_END.finditer(html))
    if not matches:
        return html + tag
    pos = matches[-1].start()
    return html[:pos] + tag + html[pos:]
