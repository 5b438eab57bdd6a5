"""
Error dari access layer. Router tidak perlu try/except satu-satu,
main.py punya handler yang mengubah ini jadi response {"detail": message}.
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400


class PermissionDenied(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class DatabaseError(AppError):
    status_code = 500


class ProcedureError(Exception):
    """Dilempar oleh sidiq.system.procedures, pesannya di-pattern-match oleh service."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
