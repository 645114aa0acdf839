class SchedulingError(Exception):
    """Base for errors reported to the caller as-is.

    `status_code` is the HTTP status the API answers with, `code` a stable
    machine-readable tag clients can branch on.
    """

    status_code = 500
    code = "scheduling_error"
    default_message = "Unexpected scheduling error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NotFoundError(SchedulingError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class ConflictError(SchedulingError):
    status_code = 409
    code = "slot_unavailable"
    default_message = "Slot unavailable, please choose another time"


class UnauthorizedError(SchedulingError):
    status_code = 403
    code = "forbidden"
    default_message = "Not allowed to manage reservations of this store"


class ValidationError(SchedulingError):
    status_code = 422
    code = "invalid_request"
    default_message = "Invalid reservation request"


class TransientStorageError(SchedulingError):
    status_code = 503
    code = "storage_unavailable"
    default_message = "Could not complete the request, please try again"


class PlanLimitError(SchedulingError):
    status_code = 403
    code = "plan_limit_reached"
    default_message = "This store reached the monthly appointment limit of its plan"


class InvalidTransitionError(SchedulingError):
    status_code = 409
    code = "invalid_transition"
    default_message = "Status transition not allowed"


class CatalogUnavailableError(SchedulingError):
    status_code = 502
    code = "catalog_unavailable"
    default_message = "Store catalog is unavailable"


class NotificationUnavailableError(Exception):
    pass
