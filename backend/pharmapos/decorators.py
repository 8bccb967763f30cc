# Overview: Identity and permission decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import NotFoundError, PermissionDeniedError, PosError
from .extensions import db
from .models import Product, Sale, User


IDENTITY_HEADER = "X-User-Id"


def error_response(exc: PosError):
    """Map a core error onto the JSON error envelope and its HTTP status."""
    return jsonify({"error": exc.to_dict()}), exc.http_status


def _unauthorized(message: str):
    return jsonify({
        "error": {"kind": "unauthenticated", "message": message, "details": {}}
    }), 401


def _is_authenticated() -> bool:
    return hasattr(g, "current_user")


def _evaluator():
    return current_app.extensions["permission_evaluator"]


def _request_target_branch(view_args: dict) -> int | None:
    # Path, then body, then query string
    if view_args.get("branch_id") is not None:
        return view_args["branch_id"]
    body = request.get_json(silent=True)
    if isinstance(body, dict) and body.get("branch_id") is not None:
        try:
            return int(body["branch_id"])
        except (TypeError, ValueError):
            return None
    return request.args.get("branch_id", type=int)


def _request_is_own_data(view_args: dict) -> bool:
    user_id = g.current_user.id
    if view_args.get("user_id") == user_id:
        return True
    body = request.get_json(silent=True)
    return isinstance(body, dict) and body.get("user_id") == user_id


def require_identity(f):
    """
    Resolve the already-authenticated caller.

    Sets the following Flask g attributes:
    - g.current_user: the User named by the X-User-Id header
    - g.branch_id: the user's branch (None for system-level roles)

    Returns 401 if the header is missing or malformed, or the user is
    unknown or deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(IDENTITY_HEADER, "").strip()
        if not raw.isdigit():
            return _unauthorized("Authentication required")

        user = db.session.get(User, int(raw))
        if user is None or not user.is_active:
            return _unauthorized("Unknown or inactive user")

        g.current_user = user
        g.branch_id = user.branch_id
        return f(*args, **kwargs)

    return decorated_function


def _check(resources_actions, target_branch, kwargs):
    user = g.current_user
    if target_branch is not None:
        try:
            branch = target_branch(**kwargs)
        except PosError as exc:
            return None, error_response(exc)
    else:
        branch = _request_target_branch(kwargs)
    own = _request_is_own_data(kwargs)

    evaluator = _evaluator()
    decision = None
    for resource, action in resources_actions:
        decision = evaluator.evaluate(user.role, resource, action, user.branch_id, branch, own)
        if decision.allowed:
            return decision, None

    resource, action = resources_actions[0]
    current_app.logger.warning(
        "Permission denied: user=%s role=%s %s:%s target_branch=%s reason=%s path=%s",
        user.id, user.role, resource, ",".join(a for _, a in resources_actions),
        branch, decision.reason if decision else None, request.path,
    )
    return None, error_response(PermissionDeniedError(resource, action))


def require_permission(resource: str, *actions: str, target_branch=None):
    """
    Require the caller's role to allow one of actions on resource.

    Actions are tried in order and the first allowed one wins, so routes
    list the specific action followed by Action.MANAGE.

    target_branch, if given, is called with the view's URL arguments and
    returns the branch the request touches; otherwise branch_id is read
    from the URL, the JSON body or the query string.

    The decision (with any numeric limit) is left on g.permission_decision.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return _unauthorized("Authentication required")

            decision, denied = _check([(resource, a) for a in actions], target_branch, kwargs)
            if denied is not None:
                return denied

            g.permission_decision = decision
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def internal_error_response():
    return jsonify({
        "error": {"kind": "internal_error", "message": "Internal server error", "details": {}}
    }), 500


def branch_of_sale(sale_id: int, **_):
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale.branch_id


def branch_of_product(product_id: int, **_):
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product.branch_id
