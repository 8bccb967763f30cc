# Overview: Flask API routes for sales; parses input and returns JSON responses.

"""Sales API routes with permission enforcement"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import (
    branch_of_sale,
    error_response,
    internal_error_response,
    require_identity,
    require_permission,
)
from ..errors import PosError
from ..permissions import Action, Resource
from ..services import sales_service
from ..services.sales_service import CheckoutPolicy
from ..services.unit_of_work import request_unit_of_work
from ..validation import CheckoutRequest, SaleReversalRequest


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/checkout")
@require_identity
@require_permission(Resource.SALES, Action.CREATE, Action.MANAGE)
def checkout_route():
    """
    Complete a sale: items, stock, customer loyalty and receipt in one go.

    Requires: sales:create or sales:manage in the body's branch_id
    Available to: super admin, cashier
    """
    try:
        checkout_request = CheckoutRequest.from_payload(
            request.get_json(silent=True),
            cashier_user_id=g.current_user.id,
        )
        sale = sales_service.checkout(
            request_unit_of_work(),
            checkout_request,
            CheckoutPolicy.from_config(current_app.config),
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201

    except PosError as e:
        current_app.logger.warning("Checkout rejected: %s %s", e.kind, e.message)
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete checkout")
        return internal_error_response()


@sales_bp.get("/<int:sale_id>")
@require_identity
@require_permission(Resource.SALES, Action.READ, Action.MANAGE, target_branch=branch_of_sale)
def get_sale_route(sale_id: int):
    """Get sale with items, receipt and customer."""
    try:
        sale = sales_service.get_sale(request_unit_of_work(), sale_id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200
    except PosError as e:
        return error_response(e)


@sales_bp.post("/<int:sale_id>/refund")
@require_identity
@require_permission(
    Resource.REFUNDS, Action.CREATE, Action.APPROVE, Action.MANAGE, target_branch=branch_of_sale
)
def refund_sale_route(sale_id: int):
    """
    Refund a completed sale in full.

    Requires: refunds:create, refunds:approve or refunds:manage in the sale's branch
    The role's numeric refund limit (currency units) caps the sale total.
    """
    try:
        reversal = SaleReversalRequest.from_payload(
            request.get_json(silent=True), sale_id=sale_id, actor_user_id=g.current_user.id
        )
        limit = g.permission_decision.numeric_limit
        sale = sales_service.refund_sale(
            request_unit_of_work(),
            reversal.sale_id,
            reversal.actor_user_id,
            reversal.reason,
            max_refund_cents=limit * 100 if limit is not None else None,
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200

    except PosError as e:
        current_app.logger.warning("Refund of sale %s rejected: %s", sale_id, e.message)
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refund sale")
        return internal_error_response()


@sales_bp.post("/<int:sale_id>/cancel")
@require_identity
@require_permission(Resource.SALES, Action.UPDATE, Action.MANAGE, target_branch=branch_of_sale)
def cancel_sale_route(sale_id: int):
    """
    Cancel (void) a completed sale.

    Requires: sales:update or sales:manage in the sale's branch
    Available to: super admin, manager, pharmacist
    """
    try:
        reversal = SaleReversalRequest.from_payload(
            request.get_json(silent=True), sale_id=sale_id, actor_user_id=g.current_user.id
        )
        sale = sales_service.cancel_sale(
            request_unit_of_work(),
            reversal.sale_id,
            reversal.actor_user_id,
            reversal.reason,
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return internal_error_response()
