# Overview: Request decorators for API routes; bearer authentication and service error mapping.

from functools import wraps
from flask import current_app, request, jsonify, g

from .services import session_service
from .validation import (
    AccountAccessError,
    ConflictError,
    NotFoundError,
    ServiceError,
    ValidationError,
)

ERROR_STATUS = (
    (ValidationError, 400),
    (AccountAccessError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
)


def require_auth(f):
    """
    Require a bearer token and establish the account context.

    Sets on Flask g:
    - g.current_user: the authenticated User
    - g.account_id: the business account the token was issued for
    - g.session_context: the full SessionContext

    Returns 401 when the header is missing, the token is unknown, expired or
    revoked, or the user/account has been deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.account_id = context.account_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def error_response(exc: ServiceError):
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return jsonify({"error": str(exc), "details": exc.details}), status
    return jsonify({"error": str(exc), "details": exc.details}), 400


def handle_service_errors(description: str):
    """
    Map service exceptions onto HTTP responses.

    Typed ServiceErrors become 400/403/404/409 with {"error", "details"};
    anything else is logged with its traceback and returned as a bare 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ServiceError as e:
                return error_response(e)
            except Exception:
                current_app.logger.exception("Failed to %s", description)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function
    return decorator
