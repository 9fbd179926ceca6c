# Overview: Shared mapping of service-layer exceptions to JSON error responses.

from flask import jsonify, current_app

from ..services.auth_service import PasswordValidationError
from ..services.collection_service import CollectionError
from ..services.cost_service import CostError
from ..services.customer_service import CustomerError
from ..services.permission_service import PermissionDeniedError
from ..services.return_service import ReturnError
from ..services.sales_service import SaleError
from ..services.task_service import TaskError
from ..validation import ConflictError, NotFoundError, ValidationError

DOMAIN_ERRORS = (SaleError, CollectionError, ReturnError, TaskError, CostError, CustomerError)


def handle_route_error(exc: Exception, failure_message: str):
    """
    Translate a service exception into (json, status).

    Unknown exceptions are logged with traceback and answered with 500.
    """
    if isinstance(exc, PermissionDeniedError):
        current_app.logger.warning("Permission denied: %s", exc)
        return jsonify({"error": "Permission denied", "message": str(exc)}), 403
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, (ValidationError, PasswordValidationError)):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, DOMAIN_ERRORS):
        return jsonify({"error": str(exc), "details": exc.details}), 400

    current_app.logger.exception(failure_message)
    return jsonify({"error": "Internal server error"}), 500
