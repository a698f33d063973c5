"""Domain errors raised by the service layer.

Each error carries a stable ``kind`` the client can branch on, and the HTTP
status the error handler renders it with. Anything that is not a
``DomainError`` is treated as an internal failure.
"""


class DomainError(Exception):
    kind = "domain_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(DomainError):
    kind = "not_found"
    status_code = 404


class Forbidden(DomainError):
    kind = "forbidden"
    status_code = 401


class InvalidState(DomainError):
    kind = "invalid_state"


class InvalidOperation(DomainError):
    kind = "invalid_operation"


class AlreadyExists(DomainError):
    kind = "already_exists"


class AlreadyAccepted(DomainError):
    kind = "already_accepted"


class ValidationError(DomainError):
    kind = "validation_error"


class RateLimited(DomainError):
    kind = "rate_limited"
    status_code = 429
