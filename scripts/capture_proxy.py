#!/usr/bin/env python3
"""
Capture an application's traffic through mitmproxy into the sessiontap data directory.

Every flow the proxy sees becomes an Exchange. Exchanges are routed to the
application owning their domain; traffic on unregistered domains lands in
apps/_unassigned and is journaled in escalations.jsonl until the domain is
registered (sessiontap register NAME DOMAIN) or assigned
(sessiontap add-domain NAME DOMAIN). The running proxy notices the registry
change on the next request to that domain and replays the held traffic into
the application before it.

Usage:
    # Start the proxy (from repo root)
    mitmdump -p 8080 -s scripts/capture_proxy.py

    # Route the client through it
    HTTPS_PROXY=http://localhost:8080 some-client

    # Inspect what was captured
    sessiontap apps
    sessiontap escalations

Configuration comes from SESSIONTAP_* environment variables (or the file named
by LOAD_ENV_FILE), e.g. SESSIONTAP_DATA_DIR=/tmp/capture.
"""

from __future__ import annotations

import logging

from mitmproxy import addonmanager

from sessiontap.config import settings
from sessiontap.pipeline import CapturePipeline

logger = logging.getLogger('sessiontap.capture_proxy')

PIPELINE = CapturePipeline(settings)

# The observer addon receives request/response/error/websocket hooks
addons = [PIPELINE.proxy_addon()]


# ==============================================================================
# Lifecycle Hooks
# ==============================================================================


def load(loader: addonmanager.Loader) -> None:
    """Called when mitmproxy starts."""
    # mitmproxy owns the root handlers; only the level of our records is set here
    logging.getLogger('sessiontap').setLevel(settings.LOG_LEVEL)
    PIPELINE.start()
    logger.info('Capturing into %s', PIPELINE.layout.root)


def done() -> None:
    """Called when mitmproxy shuts down."""
    PIPELINE.close()
    registered = ', '.join(profile.name for profile in PIPELINE.get_applications()) or 'none'
    logger.info('Capture ended. Applications: %s', registered)
