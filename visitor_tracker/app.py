from datetime import datetime, timedelta, timezone

from flask import Flask, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from visitor_tracker import config
from visitor_tracker.errors import NoData, TrackerError
from visitor_tracker.geo import GeoResolver
from visitor_tracker.logs import get_logger, set_level
from visitor_tracker.services import NOT_VERIFIED_MESSAGE, IngestionService, QueryService
from visitor_tracker.store import VisitStore

log = get_logger(__name__, config.LOG_LEVEL)


def create_app(settings=None, store=None, geo=None, clock=None):
    """
    Build the Flask app. Tests pass their own store / geo resolver / clock;
    production gets one in-memory store per process.
    """
    settings = settings or config.Settings()
    store = store or VisitStore()
    geo = geo or GeoResolver(settings.geoip_db_path)
    set_level(settings.log_level)

    app = Flask(__name__)
    app.extensions["visitor_tracker"] = {
        "settings": settings,
        "store": store,
        "ingestion": IngestionService(store, geo),
        "query": QueryService(store, tz=settings.tz, clock=clock or store.clock),
    }

    register_hooks(app)
    register_routes(app)
    register_error_handlers(app)
    return app


def ext(name):
    return current_app.extensions["visitor_tracker"][name]


# -----------------------------------------------------------------------------
# Request hooks
# -----------------------------------------------------------------------------
def pick_cors_origin(request_origin: str | None, allowed_origins) -> str | None:
    """
    Return allowed origin if it matches our allowlist ("*" matches all).
    """
    if not request_origin:
        return None
    for allowed in allowed_origins:
        if allowed == "*" or request_origin == allowed:
            return request_origin
    return None


def register_hooks(app):
    @app.before_request
    def before():
        # retention cleanup
        days = ext("settings").session_retention_days
        if days > 0:
            store = ext("store")
            removed = store.prune_sessions(store.clock() - timedelta(days=days))
            if removed:
                log.info(f"pruned {removed} sessions older than {days} days")

    @app.after_request
    def add_cors_headers(resp):
        """
        Attach CORS headers for cross-origin calls from the tracking snippet.
        """
        origin = pick_cors_origin(
            request.headers.get("Origin"), ext("settings").cors_allow_origins
        )

        if origin:
            req_headers = request.headers.get("Access-Control-Request-Headers", "Content-Type")

            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Vary"] = "Origin"
            resp.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
            resp.headers["Access-Control-Allow-Headers"] = req_headers
            resp.headers["Access-Control-Max-Age"] = "600"
        return resp


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------
def register_routes(app):
    @app.route("/api/track", methods=["POST", "OPTIONS"])
    def track():
        """
        Ping endpoint for the tracking snippet.
        Body example:
          { "pageCode": "landing-01",
            "referrer": "https://www.google.com/",
            "sessionId": "sess_1700000000000_k3j2h1",
            "pageUrl": "https://example.com/pricing" }
        """
        if request.method == "OPTIONS":
            return ("", 200)

        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}
        result = ext("ingestion").track(
            data.get("pageCode"),
            data,
            user_agent=request.headers.get("User-Agent", ""),
            remote_addr=request.remote_addr,
            headers=request.headers,
        )
        return jsonify({"success": True, "message": "Tracking data received", **result})

    @app.route("/api/verify/<page_code>")
    def verify(page_code):
        return jsonify(ext("query").verify(page_code))

    @app.route("/api/stats/<page_code>")
    def stats(page_code):
        return jsonify(ext("query").stats(page_code))

    # health
    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "trackedPages": ext("store").tracked_pages(),
        })


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------
def register_error_handlers(app):
    @app.errorhandler(TrackerError)
    def tracker_error(err):
        body = {"error": err.message}
        if isinstance(err, NoData):
            body["message"] = NOT_VERIFIED_MESSAGE
        log.info(f"{request.path} -> {err.status}: {err.message}")
        return jsonify(body), err.status

    @app.errorhandler(Exception)
    def internal_error(err):
        if isinstance(err, HTTPException):
            return err
        log.exception(f"unhandled error on {request.method} {request.path}")
        return jsonify({"error": "Internal server error"}), 500


app = create_app()


if __name__ == "__main__":
    # Dev mode, container uses gunicorn
    app.run(host="0.0.0.0", port=config.PORT, threaded=True)
