"""Domain error taxonomy.

Every failure the lifecycle, dispatch, payment and wallet services raise on
purpose is a ``DomainError``. The API layer renders them with the carried
``status_code``; nothing below the API layer imports FastAPI.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    @property
    def code(self) -> str:
        return self.__class__.__name__


class NotFound(DomainError):
    status_code = 404


class InvalidState(DomainError):
    status_code = 409


class Unauthorized(DomainError):
    status_code = 403


class PricingMissing(DomainError):
    status_code = 422


class ServiceUnavailable(DomainError):
    """Pickup city is unknown or not served."""
    status_code = 503


class SignatureInvalid(DomainError):
    status_code = 400


class PayoutNotConfigured(DomainError):
    status_code = 400


class InsufficientBalance(DomainError):
    status_code = 400


class UpstreamUnavailable(DomainError):
    """Routing service, payment gateway or database did not answer in time."""
    status_code = 502
