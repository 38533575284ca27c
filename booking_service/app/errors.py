from fastapi import status


class BookingServiceError(Exception):
    """Base class for every failure the booking engine reports to callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ValidationError(BookingServiceError):
    """Bad input (dates, amounts); raised before anything is written."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(BookingServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class VehicleUnavailable(BookingServiceError):
    """The vehicle is already reserved for an overlapping window, or cannot be rented."""

    status_code = status.HTTP_409_CONFLICT


class InvalidTransition(BookingServiceError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, target: str, reason: str = None):
        message = f"Invalid transition: {current} -> {target}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.current = current
        self.target = target


class ReferenceCollision(BookingServiceError):
    """A generated reference is already taken. Retried by the generator."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, reference: str):
        super().__init__(f"Reference {reference} already exists")
        self.reference = reference


class ReferenceGenerationFailed(BookingServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class StorageFailure(BookingServiceError):
    """The database was unreachable or the transaction was aborted."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
