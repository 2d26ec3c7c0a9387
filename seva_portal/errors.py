"""Error types raised by the services and mapped to HTTP status codes in main.py."""
from typing import Optional


class InputValidationError(ValueError):
    """Bad form input; reported to the user before anything is written."""


class InvalidAmountError(InputValidationError):
    """A monetary field is missing, non-numeric or negative."""


class FileValidationError(InputValidationError):
    """Upload rejected by the file validator."""


class InvalidTransitionError(ValueError):
    """A status change that the lifecycle table does not allow."""

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"{entity} cannot move from '{current}' to '{target}'")


class InsufficientFundsError(ValueError):
    def __init__(self, owner: str, balance: float, required: float):
        self.balance = balance
        self.required = required
        super().__init__(
            f"{owner} wallet has insufficient funds: balance ₹{balance:.2f}, required ₹{required:.2f}"
        )


class NotFoundError(LookupError):
    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection} document '{doc_id}' not found")


class PermissionDeniedError(PermissionError):
    pass


class ProviderError(RuntimeError):
    """An external provider (auth, AI, messaging) failed."""


class FeatureDisabledError(RuntimeError):
    """The feature's credentials are not configured."""


class RedirectRequired(Exception):
    """Raised by the session and role dependencies; rendered with a Location header."""

    def __init__(self, redirect: str, message: str, status_code: int = 401, reason: Optional[str] = None):
        self.redirect = redirect
        self.message = message
        self.status_code = status_code
        self.reason = reason
        super().__init__(message)
