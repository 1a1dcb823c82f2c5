"""Exceptions raised by the opportunity services."""


class EntityNotFoundError(LookupError):
    """Requested entity or lookup value does not exist."""


class AuthorizationError(PermissionError):
    """Caller is not permitted to act on the organization."""


class RequestValidationError(ValueError):
    """One or more business rules rejected the request."""

    def __init__(self, errors: str | list[str]):
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))
