import structlog
from flask import Blueprint, jsonify, request

from archive_reader.config import settings
from archive_reader.extensions import limiter
from archive_reader.services import resolver as resolver_service
from archive_reader.utils.correlation import bind_target_url

bp = Blueprint("api", __name__, url_prefix="/api")
logger = structlog.get_logger(__name__)


def _json(payload: dict, status_code: int):
    response = jsonify(payload)
    response.status_code = status_code
    response.headers["Cache-Control"] = "no-store"
    return response


@bp.route("/archive", methods=["GET"])
@limiter.limit(lambda: settings.ARCHIVE_RATE_LIMIT)
def archive():
    """Resolve ``?url=`` to a clean reader view of its best archived copy."""
    raw_url = request.args.get("url")
    bind_target_url(raw_url)

    outcome = resolver_service.resolve(raw_url)
    if outcome.status_code >= 400:
        # structlog treats the first positional argument as the ``event`` field; keep it keyword-only.
        logger.warning(
            event="archive_request_failed",
            operation="api.archive",
            status_code=outcome.status_code,
            error=outcome.payload.get("error"),
        )
    return _json(outcome.payload, outcome.status_code)
