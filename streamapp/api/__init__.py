import logging
import time

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

api_bp = Blueprint('api', __name__)

DEFAULT_ERROR_MESSAGES = {
    400: "The request body or query string is invalid.",
    404: "No such stream, profile or resource.",
    405: "This endpoint does not accept that method.",
    429: "Too many requests, slow down.",
    500: "The stream service hit an unexpected error. Please try again later.",
}


def api_error(status_code, kind, message=None):
    """The JSON error body every API endpoint answers with."""
    return jsonify(error=kind, message=message or DEFAULT_ERROR_MESSAGES.get(status_code, kind)), status_code


@api_bp.errorhandler(HTTPException)
def handle_http_exception_api(e):
    # "Not Found" -> "NotFound"
    return api_error(e.code, e.name.replace(" ", ""), e.description)


@api_bp.errorhandler(429)
def handle_rate_limited_api(e):
    return api_error(429, "TooManyRequests", f"Rate limit exceeded: {e.description}")


@api_bp.errorhandler(500)
def handle_internal_server_error_api(e):
    current_app.logger.error(f"Stream API: unhandled error on {request.method} {request.path}: {e}", exc_info=True)
    return api_error(500, "InternalServerError")


@api_bp.before_request
def start_request_timer():
    g.api_start_time = time.time()
    if not current_app.debug and current_app.logger.level > logging.INFO: # pragma: no cover
        current_app.logger.setLevel(logging.INFO)
    current_app.logger.info(f"Stream API START: {request.method} {request.full_path} from {request.remote_addr}")


@api_bp.after_request
def log_request_outcome(response):
    started = g.get('api_start_time')
    duration_ms = (time.time() - started) * 1000 if started else -1
    summary = (f"Stream API END: {request.method} {request.full_path} -> {response.status_code} "
               f"in {duration_ms:.1f}ms")

    if response.status_code >= 500:
        current_app.logger.error(summary)
    elif response.status_code >= 400:
        current_app.logger.warning(f"{summary} body={response.get_data(as_text=True)[:300]}")
    else:
        current_app.logger.info(summary)
    return response


from streamapp.api import streams, likes, categories, chat, follows, profiles, reviews, creators, spotlight, uploads, mint # noqa: E402,F401
