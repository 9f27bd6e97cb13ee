from fastapi import status


class BookingError(Exception):
    """Base for failures the HTTP layer renders as ``{"error": message}``."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(BookingError):
    status_code = status.HTTP_409_CONFLICT


class InternalInconsistency(BookingError):
    """A record is missing the row handle needed for a targeted update."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UpstreamFailure(BookingError):
    """Google Sheets or Calendar returned an error or could not be reached."""

    status_code = status.HTTP_502_BAD_GATEWAY
