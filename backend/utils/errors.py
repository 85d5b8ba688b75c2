"""
Domain errors raised by the order lifecycle, catalog and payment services.
main.py translates every MarketplaceError into a {"detail": message} response.
"""
from fastapi import status


class MarketplaceError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketplaceError):
    """Malformed input; nothing has been written"""
    status_code = status.HTTP_400_BAD_REQUEST


class PreconditionFailed(MarketplaceError):
    """Transition not legal from the record's current state"""
    status_code = status.HTTP_409_CONFLICT


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN


class PaymentDeclined(MarketplaceError):
    """Gateway reported failure or the user cancelled; order keeps its pre-payment state"""
    status_code = status.HTTP_402_PAYMENT_REQUIRED


class ExternalFailure(MarketplaceError):
    """Store or gateway call failed; no retry is attempted here"""
    status_code = status.HTTP_502_BAD_GATEWAY
