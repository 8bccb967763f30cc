# Overview: Read-only view of the caller's effective permissions.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_identity


permissions_bp = Blueprint("permissions", __name__, url_prefix="/api/permissions")


@permissions_bp.get("/me")
@require_identity
def my_permissions():
    """Resources and actions the caller's role grants, with conditions."""
    evaluator = current_app.extensions["permission_evaluator"]
    table = evaluator.table
    role = g.current_user.role

    resources = {}
    for resource in evaluator.accessible_resources(role):
        permission = table.permission_for(role, resource)
        resources[resource] = {
            "actions": evaluator.allowed_actions(role, resource),
            "branch_scoped": permission.conditions.branch_scoped,
            "own_data_only": permission.conditions.own_data_only,
            "numeric_limit": permission.conditions.numeric_limit,
        }

    return jsonify({
        "user_id": g.current_user.id,
        "role": role,
        "branch_id": g.branch_id,
        "description": evaluator.role_description(role),
        "resources": resources,
    }), 200
