from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    NOT_FOUND = ErrorDefinition("NOT_FOUND", "Resource not found", status.HTTP_404_NOT_FOUND)
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INSUFFICIENT_STOCK = ErrorDefinition(
        "INSUFFICIENT_STOCK",
        "Insufficient stock",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    SERIAL_UNAVAILABLE = ErrorDefinition(
        "SERIAL_UNAVAILABLE",
        "Serial number is not available",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    SERIAL_COUNT_MISMATCH = ErrorDefinition(
        "SERIAL_COUNT_MISMATCH",
        "Serial number count does not match quantity",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    DUPLICATE_SERIAL = ErrorDefinition(
        "DUPLICATE_SERIAL",
        "Serial number already exists",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INVALID_TRANSITION = ErrorDefinition(
        "INVALID_TRANSITION",
        "Invalid state transition",
        status.HTTP_409_CONFLICT,
    )
    ALREADY_RECEIVED = ErrorDefinition(
        "ALREADY_RECEIVED",
        "Purchase has already been received",
        status.HTTP_409_CONFLICT,
    )
    INVALID_SERIAL_TRANSITION = ErrorDefinition(
        "INVALID_SERIAL_TRANSITION",
        "Invalid serial number status transition",
        status.HTTP_409_CONFLICT,
    )
    INVALID_TRANSFER_TRANSITION = ErrorDefinition(
        "INVALID_TRANSFER_TRANSITION",
        "Invalid transfer status transition",
        status.HTTP_409_CONFLICT,
    )
    INVALID_APPROVAL_STATE = ErrorDefinition(
        "INVALID_APPROVAL_STATE",
        "Document is not pending approval",
        status.HTTP_409_CONFLICT,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD = ErrorDefinition(
        "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD",
        "Idempotency key reused with different payload",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REQUEST_IN_PROGRESS = ErrorDefinition(
        "IDEMPOTENCY_REQUEST_IN_PROGRESS",
        "Idempotency request already in progress",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REPLAY = ErrorDefinition(
        "IDEMPOTENCY_REPLAY",
        "Idempotent replay",
        status.HTTP_200_OK,
    )


class AppError(Exception):
    default_error: ErrorDefinition = ErrorCatalog.INTERNAL_ERROR

    def __init__(self, error: ErrorDefinition | None = None, details: object | None = None):
        self.error = error or self.default_error
        self.details = details
        super().__init__(self.error.message)


class NotFoundError(AppError):
    default_error = ErrorCatalog.NOT_FOUND


class ValidationFailedError(AppError):
    default_error = ErrorCatalog.VALIDATION_ERROR


class InsufficientStockError(AppError):
    default_error = ErrorCatalog.INSUFFICIENT_STOCK


class SerialUnavailableError(AppError):
    default_error = ErrorCatalog.SERIAL_UNAVAILABLE


class SerialCountMismatchError(AppError):
    default_error = ErrorCatalog.SERIAL_COUNT_MISMATCH


class DuplicateSerialError(AppError):
    default_error = ErrorCatalog.DUPLICATE_SERIAL


class InvalidTransitionError(AppError):
    """A document or serial unit is in the wrong state for the requested action."""

    default_error = ErrorCatalog.INVALID_TRANSITION


class AlreadyReceivedError(InvalidTransitionError):
    default_error = ErrorCatalog.ALREADY_RECEIVED


class InvalidSerialTransitionError(InvalidTransitionError):
    default_error = ErrorCatalog.INVALID_SERIAL_TRANSITION


class InvalidTransferTransitionError(InvalidTransitionError):
    default_error = ErrorCatalog.INVALID_TRANSFER_TRANSITION


class InvalidApprovalStateError(InvalidTransitionError):
    default_error = ErrorCatalog.INVALID_APPROVAL_STATE


class LockTimeoutError(AppError):
    """Row-lock wait exceeded LOCK_TIMEOUT_MS; nothing was committed, the operation may be retried."""

    default_error = ErrorCatalog.LOCK_TIMEOUT
    retryable = True


LEDGER_REJECTIONS = (
    InsufficientStockError,
    SerialUnavailableError,
    SerialCountMismatchError,
    DuplicateSerialError,
    InvalidTransitionError,
)
