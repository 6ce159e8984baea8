"""Helper HTTP server relaying ticketing platform ``Date`` headers.

Endpoints
---------
/api/platform-time/<platform_id>  → corrected time of one platform
/api/platform-times               → all platforms, fetched in parallel
/api/health                       → liveness probe (its ``Date`` header is a
                                    reference source for clients as well)
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, Response, jsonify

from .config import Settings
from .platform_time import PlatformTimeError, PlatformTimeService

__all__ = ["create_app", "run_server"]

log = logging.getLogger(__name__)


def create_app(
    service: Optional[PlatformTimeService] = None,
    *,
    settings: Optional[Settings] = None,
) -> Flask:
    """Build the Flask app around a :class:`PlatformTimeService`."""

    settings = settings or Settings.from_env()
    if service is None:
        service = PlatformTimeService(
            settings.platform_urls,
            detect_local_headers=settings.detect_local_headers,
        )

    app = Flask(__name__)
    app.config["PLATFORM_TIME_SERVICE"] = service

    @app.after_request
    def _allow_cross_origin(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.get("/api/platform-time/<platform_id>")
    def platform_time(platform_id: str):
        if platform_id not in service.platform_urls:
            return (
                jsonify(
                    {
                        "error": "Invalid platform ID",
                        "availablePlatforms": service.platform_ids(),
                    }
                ),
                400,
            )
        try:
            result = service.fetch(platform_id)
        except PlatformTimeError as exc:
            return jsonify(exc.to_json()), 500
        return jsonify(result.to_json())

    @app.get("/api/platform-times")
    def platform_times():
        return jsonify(service.fetch_all())

    @app.get("/api/health")
    def health():
        return jsonify({"status": "ok", "timestamp": service.now_ms()})

    return app


def run_server(settings: Optional[Settings] = None) -> None:  # pragma: no cover - blocking
    settings = settings or Settings.from_env()
    app = create_app(settings=settings)
    log.info("Server running on http://%s:%d", settings.host, settings.port)
    for rule in ("/api/platform-time/<platform_id>", "/api/platform-times", "/api/health"):
        log.info("endpoint GET %s", rule)
    app.run(host=settings.host, port=settings.port, threaded=True)
