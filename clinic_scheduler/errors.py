# clinic_scheduler/errors.py
from fastapi import status


class ClinicError(Exception):
    """Base class for errors raised by the scheduling engines."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ClinicError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ClinicError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ClinicError):
    status_code = status.HTTP_409_CONFLICT


class ForbiddenError(ClinicError):
    status_code = status.HTTP_403_FORBIDDEN
