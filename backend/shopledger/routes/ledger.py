# Overview: Flask API route for customer balance reconciliation (admin only).

from flask import Blueprint, request, jsonify, g

from ..services import customer_service
from ..decorators import require_auth, require_action
from .errors import handle_route_error


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.post("/reconcile")
@require_auth
@require_action("RECONCILE_LEDGER")
def reconcile_route():
    """
    Recompute balances from balance events.

    Query param fix=1 resets drifting cached balances to the ledger sum.
    """
    try:
        fix = request.args.get("fix") == "1"
        drifts = customer_service.reconcile_balances(g.current_user, fix=fix)
        return jsonify({
            "drift_count": len(drifts),
            "fixed": fix and bool(drifts),
            "items": [d.to_dict() for d in drifts],
        }), 200
    except Exception as e:
        return handle_route_error(e, "Failed to reconcile balances")
