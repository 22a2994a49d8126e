"""
Application errors.

Handlers in main.py turn every AppError into a JSON body of the form
{"detail": message} with the error's status code.
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400


class InsufficientStockError(ValidationError):
    pass


class InvalidSignature(ValidationError):
    def __init__(self, message: str = "Invalid payment signature"):
        super().__init__(message)


class AuthError(AppError):
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class GatewayError(AppError):
    status_code = 502
