#!/usr/bin/env python3
"""
bones_dash.py — is today a bones day?
- Flask web UI showing the current reading
- live stream ingestion on a background thread
- in-memory single-slot store, reset on every start
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from loguru import logger

from bonesday import utils
from bonesday.ingest import DEFAULT_STREAM_URL, STALL_TIMEOUT, HttpStreamConnector, StreamIngester
from bonesday.service import VibeService
from bonesday.store import VibeStore
from bonesday.web import create_app

# -----------------------------
# Configuration (environment)
# -----------------------------

APP_TITLE = os.environ.get("BONES_DASH_TITLE", "Bones Day?")
TIMEZONE = os.environ.get("BONES_DASH_TIMEZONE", "America/New_York")
STREAM_URL = os.environ.get("BONES_DASH_STREAM_URL", DEFAULT_STREAM_URL)
BEARER_FILE = os.environ.get("BONES_DASH_BEARER_FILE", "api/bearer")
FOLLOW = [f.strip() for f in os.environ.get("BONES_DASH_FOLLOW", "").split(",") if f.strip()]
LANGUAGE = [lang.strip() for lang in os.environ.get("BONES_DASH_LANGUAGE", "en").split(",") if lang.strip()]
STALL_TIMEOUT_SECONDS = float(os.environ.get("BONES_DASH_STALL_TIMEOUT", str(STALL_TIMEOUT)))
HOST = os.environ.get("BONES_DASH_HOST", "127.0.0.1")
PORT = int(os.environ.get("BONES_DASH_PORT", "3000"))


def read_bearer_token() -> Optional[str]:
    token = os.environ.get("BONES_DASH_BEARER_TOKEN")
    if token:
        return token.strip()
    path = Path(BEARER_FILE)
    if path.is_file():
        return path.read_text(encoding="utf-8").strip() or None
    return None


def main() -> None:
    zone = utils.get_zone(TIMEZONE)
    store = VibeStore()
    service = VibeService(store, zone)

    ingester = None
    token = read_bearer_token()
    if token:
        connector = HttpStreamConnector(token, FOLLOW, LANGUAGE, url=STREAM_URL, stall_timeout=STALL_TIMEOUT_SECONDS)
        ingester = StreamIngester(store, connector)
        ingester.start()
    else:
        logger.warning("No bearer token configured; stream ingestion disabled")

    app = create_app(APP_TITLE, service, ingester)
    try:
        app.run(host=HOST, port=PORT, debug=False)
    finally:
        if ingester is not None:
            ingester.stop()


if __name__ == "__main__":
    main()
