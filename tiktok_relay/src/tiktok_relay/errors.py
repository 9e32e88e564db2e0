# src/tiktok_relay/errors.py

from typing import Any, Optional

from fastapi import status


class RelayError(Exception):
    """Base for every failure a relay operation can report to its caller.

    ``status_code`` is the HTTP status the route layer answers with and
    ``detail`` is whatever the provider (or the caller) supplied, passed on
    verbatim for debugging.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, detail: Any = None):
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_payload(self) -> Any:
        return self.detail if self.detail is not None else self.message


# --- Caller / state errors ---

class ProviderDeniedError(RelayError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, error: str, error_description: Optional[str] = None):
        self.error = error
        self.error_description = error_description
        message = f"{error}: {error_description}" if error_description else error
        super().__init__(message, detail={"error": error, "error_description": error_description})


class InvalidStateError(RelayError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Invalid OAuth state or missing code"):
        super().__init__(message)


class UnauthorizedError(RelayError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Not authorized. Go to /auth first."):
        super().__init__(message)


class MissingInputError(RelayError):
    status_code = status.HTTP_400_BAD_REQUEST


class NoRefreshTokenError(RelayError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "No refresh token yet"):
        super().__init__(message)


# --- Upstream errors ---

class UpstreamError(RelayError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UpstreamExchangeError(UpstreamError):
    pass


class UpstreamUploadError(UpstreamError):
    pass


class UpstreamPublishError(UpstreamError):
    pass


class UpstreamRefreshError(UpstreamError):
    pass
