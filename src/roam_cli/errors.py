"""Exceptions raised by the Roam client."""


class RoamAPIError(Exception):
    """Base exception for all Roam API errors.

    This is the parent class for all exceptions raised by the Roam client.
    Catch this to handle any Roam-related error.
    """


class AuthenticationError(RoamAPIError):
    """Raised when credentials for the Roam API are missing."""


class PageNotFoundError(RoamAPIError):
    """Raised when a requested page is not found in the Roam graph."""


class RedirectError(RoamAPIError):
    """Raised when a redirect response has no usable Location header."""


class TransportError(RoamAPIError):
    """Raised when the connection fails or drops before a response is read."""


class RequestTimeoutError(RoamAPIError):
    """Raised when a request does not complete within its time budget."""


class ResponseParseError(RoamAPIError):
    """Raised when a successful response body is not valid JSON."""


class HTTPStatusError(RoamAPIError):
    """Raised when the final response status is anything other than 200.

    The body is kept exactly as received so callers can apply their own
    classification, e.g. detecting a page that already exists.
    """

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body
