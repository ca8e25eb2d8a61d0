"""
Trusted reverse-proxy hops.

``X-Forwarded-For`` is only honoured when ``PROXY_FIX_X_FOR`` says how many
proxies sit in front of the app; with the default of 0 the header is
ignored and ``request.remote_addr`` is the socket peer, so a caller cannot
choose the address written to the verification log.
"""

import logging

from werkzeug.middleware.proxy_fix import ProxyFix

logger = logging.getLogger(__name__)


def init_proxy_fix(app):
    hops = int(app.config.get("PROXY_FIX_X_FOR") or 0)
    if hops <= 0:
        return
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=hops, x_proto=hops, x_host=hops)
    logger.info("Trusting %d proxy hop(s) for client address", hops)
