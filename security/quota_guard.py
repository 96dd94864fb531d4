from functools import wraps
from flask import current_app, g, jsonify, make_response

from security.errors import QuotaExceeded


def get_usage_limiter():
    return current_app.extensions["usage_limiter"]


def enforce_usage_limit(service_name: str):
    """
    Usage: @enforce_usage_limit("lesson_plan")

    Expects g.user (id + role) from the authentication layer. Denies with 429
    once today's quota is used up; counts the call only if the view succeeded.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required", code="AUTH_REQUIRED"), 401

            limiter = get_usage_limiter()
            try:
                g.limit_info = limiter.ensure_within_limit(user, service_name)
            except QuotaExceeded as e:
                g.limit_info = e.decision
                current_app.logger.info(
                    "Daily limit reached for %s (%s/%s)", service_name, e.decision.current_usage, e.decision.limit
                )
                return jsonify(
                    error=e.message,
                    code="USAGE_LIMIT_REACHED",
                    limitInfo=e.decision.as_dict(),
                ), 429

            resp = make_response(fn(*args, **kwargs))
            if resp.status_code < 400:
                limiter.record_usage(user, service_name)
            return resp
        return wrapper
    return decorator
