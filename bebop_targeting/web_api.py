"""Flask JSON API for Bebop Targeting.

Routes
------
``POST /generate``
    Body is a generation request (``progression``, ``key``, ``tempo_bpm``,
    ``swing``, ``contour_slider``, ``seed``).  Returns the notes, metadata,
    text/MIDI/MusicXML artifacts and the bar structure as JSON.
``POST /generate/midi``
    Same body; returns the MIDI file as an ``audio/midi`` attachment.
``POST /generate/variants``
    Body ``{"baseRequest": {...}, "count": 2, "seeds": [...]}``; returns
    ``{"variants": [...]}``.

Every route answers ``OPTIONS`` with ``204``.  CORS headers are added by
Flask-CORS so a browser front end on another origin can call the API.

Errors are reported as JSON: invalid input yields ``400``, unknown chords
``422`` with the list of issues, unknown routes ``404`` and anything
unexpected ``500``.

Protections
-----------
* ``MAX_CONTENT_LENGTH`` caps request bodies (``MAX_UPLOAD_MB``, default 1).
* An in-memory per-IP limiter configured by ``RATE_LIMIT_PER_MINUTE`` answers
  ``429`` with a ``Retry-After`` header.  Its request log is guarded by a lock
  and purged of stale entries on every request.
"""

from __future__ import annotations

import io
import logging
import math
import os
import re
import secrets
import sys
from threading import Lock
from time import monotonic
from typing import Any, Dict, Mapping, Optional, Tuple

from flask import Flask, Response, current_app, jsonify, make_response, request, send_file
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .api import (
    GeneratorOptions,
    generate_from_request,
    generate_midi_stream,
    generate_variants_from_request,
)
from .errors import ProgressionValidationError
from .scheduler import SchedulerRequest

__all__ = ["create_app", "rate_limit", "app", "main"]

logger = logging.getLogger(__name__)

CORS_METHODS = ["POST", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type"]

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 4000
DEFAULT_MAX_UPLOAD_MB = 1

# Client IP -> (window_start, count) for the current rate-limit window.
REQUEST_LOG: Dict[str, Tuple[float, int]] = {}
REQUEST_LOCK = Lock()
RATE_LIMIT_WINDOW = 60.0


def rate_limit() -> Optional[Response]:
    """Enforce a naive per-IP request limit.

    Registered as a ``before_request`` hook.  Missing, zero or invalid
    ``RATE_LIMIT_PER_MINUTE`` configuration disables the limiter; invalid and
    negative values are logged.

    Returns:
        Optional[Response]: ``429`` response when the limit is exceeded,
        otherwise ``None`` so the request proceeds.
    """

    limit_raw = current_app.config.get("RATE_LIMIT_PER_MINUTE")
    if limit_raw is None:
        return None
    try:
        limit = int(limit_raw)
    except (TypeError, ValueError):
        logger.warning("Invalid RATE_LIMIT_PER_MINUTE %r; disabling rate limiting", limit_raw)
        return None
    if limit <= 0:
        if limit < 0:
            logger.warning(
                "RATE_LIMIT_PER_MINUTE must be positive; disabling rate limiting (received %r)",
                limit_raw,
            )
        return None

    now = monotonic()
    ip_addr = request.remote_addr or "unknown"
    with REQUEST_LOCK:
        expired = [ip for ip, (start, _) in REQUEST_LOG.items() if now - start >= RATE_LIMIT_WINDOW]
        for ip in expired:
            del REQUEST_LOG[ip]

        window_start, count = REQUEST_LOG.get(ip_addr, (now, 0))
        if now - window_start >= RATE_LIMIT_WINDOW:
            REQUEST_LOG[ip_addr] = (now, 1)
            return None
        if count >= limit:
            remaining = math.ceil(max(0.0, RATE_LIMIT_WINDOW - (now - window_start)))
            response = make_response(jsonify({"message": "Too many requests"}), 429)
            response.headers["Retry-After"] = str(remaining)
            return response
        REQUEST_LOG[ip_addr] = (window_start, count + 1)
    return None


def _preflight() -> Response:
    return make_response("", 204)


def _read_json() -> Mapping[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, Mapping):
        raise ValueError("Request body must be a valid JSON object")
    return payload


def _options() -> Optional[GeneratorOptions]:
    return current_app.config.get("GENERATOR_OPTIONS")


def _midi_filename(progression: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_-]+", "-", progression or "").strip("-")
    return f"{safe or 'bebop'}.mid"


def generate():
    if request.method == "OPTIONS":
        return _preflight()
    scheduler_request = SchedulerRequest.from_dict(_read_json())
    return jsonify(generate_from_request(scheduler_request, _options()).to_dict())


def generate_midi():
    if request.method == "OPTIONS":
        return _preflight()
    scheduler_request = SchedulerRequest.from_dict(_read_json())
    stream = generate_midi_stream(scheduler_request, _options())
    response = send_file(
        io.BytesIO(stream.midi_bytes),
        mimetype="audio/midi",
        as_attachment=True,
        download_name=_midi_filename(scheduler_request.progression),
    )
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    return response


def generate_variants():
    if request.method == "OPTIONS":
        return _preflight()
    payload = _read_json()
    base = payload.get("baseRequest", payload.get("base_request"))
    if not isinstance(base, Mapping):
        raise ValueError("baseRequest is required")
    seeds = payload.get("seeds")
    if seeds is not None and not isinstance(seeds, list):
        raise ValueError("seeds must be a list of numbers")
    response = generate_variants_from_request(
        SchedulerRequest.from_dict(base),
        count=payload.get("count"),
        seeds=seeds,
        options=_options(),
    )
    return jsonify(response.to_dict())


def _int_from_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("%s must be an integer; using %r.", name, default)
        return default


def create_app(options: Optional[GeneratorOptions] = None) -> Flask:
    """Build and configure the Flask application instance.

    Parameters
    ----------
    options:
        Generation defaults shared by every request.  ``None`` uses the
        built-in defaults.

    Returns
    -------
    Flask
        Configured application ready for a WSGI server.
    """

    app = Flask(__name__)

    secret = os.environ.get("FLASK_SECRET")
    if not secret:
        secret = secrets.token_urlsafe(32)
        logger.warning("FLASK_SECRET environment variable not set. Using a randomly generated key.")
    app.secret_key = secret

    max_mb = _int_from_env("MAX_UPLOAD_MB", DEFAULT_MAX_UPLOAD_MB)
    app.config["MAX_CONTENT_LENGTH"] = max_mb * 1024 * 1024
    app.config["RATE_LIMIT_PER_MINUTE"] = _int_from_env("RATE_LIMIT_PER_MINUTE", None)
    app.config["GENERATOR_OPTIONS"] = options

    app.add_url_rule("/generate", view_func=generate, methods=["POST", "OPTIONS"])
    app.add_url_rule("/generate/midi", view_func=generate_midi, methods=["POST", "OPTIONS"])
    app.add_url_rule("/generate/variants", view_func=generate_variants, methods=["POST", "OPTIONS"])

    app.before_request(rate_limit)
    CORS(app, origins="*", send_wildcard=True, methods=CORS_METHODS, allow_headers=CORS_ALLOW_HEADERS)

    @app.errorhandler(ProgressionValidationError)
    def handle_unknown_chords(err: ProgressionValidationError):
        payload = {"message": str(err), "issues": [issue.to_dict() for issue in err.issues]}
        return jsonify(payload), 422

    @app.errorhandler(ValueError)
    def handle_bad_request(err: ValueError):
        return jsonify({"message": str(err)}), 400

    @app.errorhandler(404)
    def handle_not_found(_err):
        return jsonify({"message": "Route not found"}), 404

    @app.errorhandler(413)
    def handle_request_too_large(_err):
        return jsonify({"message": "Request exceeds configured size limit."}), 413

    @app.errorhandler(Exception)
    def handle_unexpected(err: Exception):
        if isinstance(err, HTTPException):
            return jsonify({"message": err.description}), err.code
        logger.exception("Unexpected error while handling %s", request.path)
        return jsonify({"message": "Internal server error"}), 500

    return app


# Default application for WSGI servers such as ``gunicorn bebop_targeting.web_api:app``.
app = create_app()


def main() -> None:
    """Run the development server on ``BEBOP_HOST``:``BEBOP_PORT``."""

    from . import load_settings, options_from_settings

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    host = os.environ.get("BEBOP_HOST", DEFAULT_HOST)
    port = _int_from_env("BEBOP_PORT", DEFAULT_PORT)
    try:
        options = options_from_settings(load_settings())
    except ValueError as exc:
        logging.error("Invalid settings: %s", exc)
        sys.exit(1)
    server = create_app(options)
    logger.info("Serving Bebop Targeting API on http://%s:%d", host, port)
    server.run(host=host, port=port)


if __name__ == "__main__":
    main()
