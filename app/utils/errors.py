# app/utils/errors.py
from fastapi import HTTPException, status


class ServiceError(Exception):
    """Erreur métier levée par les services"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class PermissionDeniedError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class ValidationFailedError(ServiceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class RateLimitedError(ServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


def to_http(error: ServiceError) -> HTTPException:
    """Convertit une erreur de service en HTTPException"""
    return HTTPException(status_code=error.status_code, detail=error.message)
