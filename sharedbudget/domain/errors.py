class BudgetAppError(Exception):
    """Base class for errors the API turns into a 4xx response."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BudgetAppError, ValueError):
    status_code = 400


class AuthenticationError(BudgetAppError):
    status_code = 401


class ForbiddenError(BudgetAppError):
    status_code = 403


class NotFoundError(BudgetAppError):
    status_code = 404


class ConflictError(BudgetAppError):
    status_code = 409
