# Overview: Flask API routes for stock movements and stock alerts.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import (
    branch_of_product,
    error_response,
    internal_error_response,
    require_identity,
    require_permission,
)
from ..errors import PosError, ValidationError
from ..permissions import Action, Resource
from ..services import inventory_service
from ..services.unit_of_work import request_unit_of_work
from ..validation import StockMovementRequest


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/products/<int:product_id>/movements")
@require_identity
@require_permission(Resource.PRODUCTS, Action.UPDATE, Action.MANAGE, target_branch=branch_of_product)
def apply_movement_route(product_id: int):
    """
    Receive, remove, adjust or return stock for a product.

    Body: {"type": "IN|OUT|ADJUSTMENT|RETURN", "quantity": int, "reason": str?, "reference": str?}
    """
    try:
        movement = StockMovementRequest.from_payload(request.get_json(silent=True), product_id=product_id)
        new_stock = inventory_service.apply_movement(
            request_unit_of_work(),
            movement,
            g.current_user.id,
            conflict_retries=current_app.config.get("CHECKOUT_CONFLICT_RETRIES", 1),
        )
        return jsonify({"product_id": product_id, "stock": new_stock}), 201

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply stock movement")
        return internal_error_response()


@inventory_bp.get("/products/<int:product_id>/movements")
@require_identity
@require_permission(Resource.PRODUCTS, Action.READ, Action.MANAGE, target_branch=branch_of_product)
def movement_history_route(product_id: int):
    try:
        movements = inventory_service.movement_history(request_unit_of_work(), product_id)
        return jsonify({
            "product_id": product_id,
            "movements": [m.to_dict() for m in movements],
        }), 200
    except PosError as e:
        return error_response(e)


@inventory_bp.get("/low-stock")
@require_identity
@require_permission(Resource.PRODUCTS, Action.READ, Action.MANAGE)
def low_stock_route():
    """Active products at or below min_stock. branch_id defaults to the caller's branch."""
    branch_id = request.args.get("branch_id", type=int) or g.branch_id
    if branch_id is None:
        return error_response(ValidationError("branch_id is required"))

    products = inventory_service.low_stock_products(request_unit_of_work(), branch_id)
    return jsonify({
        "branch_id": branch_id,
        "products": [p.to_dict() for p in products],
    }), 200
