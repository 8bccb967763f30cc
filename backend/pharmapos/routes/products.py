# Overview: Flask API routes for product lifecycle.

from flask import Blueprint, current_app, jsonify

from ..decorators import (
    branch_of_product,
    error_response,
    internal_error_response,
    require_identity,
    require_permission,
)
from ..errors import PosError
from ..permissions import Action, Resource
from ..services.deletion_service import delete_product
from ..services.unit_of_work import request_unit_of_work


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.delete("/<int:product_id>")
@require_identity
@require_permission(Resource.PRODUCTS, Action.DELETE, Action.MANAGE, target_branch=branch_of_product)
def delete_product_route(product_id: int):
    """
    Delete a product.

    Products with sales or stock history are deactivated instead of removed;
    the response says which happened.
    """
    try:
        policy = delete_product(request_unit_of_work(), product_id)
        return jsonify({"product_id": product_id, "policy": policy}), 200
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return internal_error_response()
