# ponto_api/common/errors.py
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException
from ponto_api.common.http import fail


class APIError(Exception):
    """Base for errors that carry their own HTTP status and error code."""
    code = "API_ERROR"
    status_code = 400

    def __init__(self, message, code=None, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.payload = payload


class AuditNotFound(APIError):
    code = "AUDIT_NOT_FOUND"
    status_code = 404


class AuditAlreadyLinked(APIError):
    """An audit record is already linked to a different time entry (or the entry already has one)."""
    code = "AUDIT_ALREADY_LINKED"
    status_code = 409

    def __init__(self, audit_id, time_entry_id, linked_to=None):
        super().__init__(
            f"Audit {audit_id} cannot be linked to time entry {time_entry_id}",
            payload={"audit_id": audit_id, "time_entry_id": time_entry_id, "linked_to": linked_to},
        )
        self.audit_id = audit_id
        self.time_entry_id = time_entry_id
        self.linked_to = linked_to


class StoreUnavailable(APIError):
    """Transient persistence failure; the whole punch request is safe to retry."""
    code = "STORE_UNAVAILABLE"
    status_code = 503

    def __init__(self, message="Storage temporarily unavailable, please retry"):
        super().__init__(message)


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return fail(e.message, status=e.status_code, code=e.code, detail=e.payload)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(IntegrityError)
    def _dup(e: IntegrityError):
        return fail("Duplicate or FK constraint failed", status=409, code="CONSTRAINT_ERROR")

    @app.errorhandler(Exception)
    def _500(e: Exception):
        app.logger.exception(e)
        return fail("Internal server error", status=500)
