# errors.py — Typed business errors
# Raised by services, propagated untouched to the request boundary where
# FastAPI renders them (they are HTTPExceptions).

from fastapi import HTTPException


class AppError(HTTPException):
    """Business-rule rejection carrying an HTTP-status-equivalent code"""

    def __init__(self, message: str, status_code: int):
        super().__init__(status_code=status_code, detail=message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    @classmethod
    def bad_request(cls, message: str) -> "AppError":
        return BadRequestError(message)

    @classmethod
    def unauthorized(cls, message: str = "Unauthorized") -> "AppError":
        return UnauthorizedError(message)

    @classmethod
    def forbidden(cls, message: str = "Forbidden") -> "AppError":
        return ForbiddenError(message)

    @classmethod
    def not_found(cls, message: str = "Not found") -> "AppError":
        return NotFoundError(message)

    @classmethod
    def conflict(cls, message: str) -> "AppError":
        return ConflictError(message)


class BadRequestError(AppError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, 401)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, 403)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, 404)


class ConflictError(AppError):
    def __init__(self, message: str):
        super().__init__(message, 409)
