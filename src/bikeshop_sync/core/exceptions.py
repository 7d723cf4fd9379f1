"""Exception hierarchy for Bling integration and checkout failures."""

from typing import Optional


class BikeshopError(Exception):
    """Base class for all application errors."""


class NotConnected(BikeshopError):
    """No Bling token has ever been stored."""

    def __init__(self, message: str = "Bling not connected. Please authorize first."):
        super().__init__(message)


class RefreshFailed(BikeshopError):
    """The refresh_token exchange was rejected by Bling."""

    def __init__(self, message: str = "Failed to refresh Bling token. Please reconnect.", status: int = 0):
        super().__init__(message)
        self.status = status


class TokenExchangeFailed(BikeshopError):
    """The authorization_code exchange failed or tokens could not be stored."""


class BlingAPIError(BikeshopError):
    """Base class for failed Bling API calls."""

    def __init__(self, message: str, status: int = 0, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body


class Unauthorized(BlingAPIError):
    """Bling rejected the access token (HTTP 401)."""


class NotFound(BlingAPIError):
    """Bling returned 404 or an empty lookup result."""


class RemoteError(BlingAPIError):
    """Bling returned a non-2xx, non-401 status or could not be reached."""


class UnexpectedPayload(RemoteError):
    """A 2xx Bling response did not match the expected schema."""


class OrderPersistenceFailed(BikeshopError):
    """The local order or its items could not be written."""


class ProductNotFoundError(BikeshopError):
    """A local product referenced by id does not exist."""


class OrderNotFoundError(BikeshopError):
    """A local order referenced by id does not exist."""
