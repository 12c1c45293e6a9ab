# Overview: JSON error responses for service exceptions, registered on the app.

from flask import jsonify, current_app

from .validation import ValidationError
from .services.auth_service import AuthError
from .services.document_store import (
    BatchConflictError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
)
from .services.inventory_service import InsufficientStockError
from .services.sales_service import SaleLockedError


# Most specific class first
STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (InsufficientStockError, 409),
    (SaleLockedError, 409),
    (BatchConflictError, 409),
    (AuthError, 403),
    (StoreUnavailableError, 503),
    (StoreError, 400),
)


def _status_for(exc: StoreError) -> int:
    for error_cls, status in STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status
    return 400


def register_error_handlers(app) -> None:

    def _validation_error_handler(e: ValidationError):
        return jsonify({"error": str(e)}), 400

    def _store_error_handler(e: StoreError):
        status = _status_for(e)
        if status >= 500:
            current_app.logger.error("Document store unavailable: %s", e, exc_info=e.__cause__ or e)
            return jsonify({"error": "Service temporarily unavailable"}), status
        return jsonify({"error": str(e), "details": e.details}), status

    def _internal_error_handler(e):
        # Flask already logged the original exception
        return jsonify({"error": "Internal server error"}), 500

    app.register_error_handler(ValidationError, _validation_error_handler)
    app.register_error_handler(StoreError, _store_error_handler)
    app.register_error_handler(500, _internal_error_handler)
