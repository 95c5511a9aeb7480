"""
Error taxonomy. Raised by stores, proxy and credential checks; rendered to JSON by main.py.
"""


class ServiceError(Exception):
    """Base for errors with a defined HTTP outcome."""

    status_code = 500
    error = "Internal error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.error)
        self.message = message or self.error

    def body(self) -> dict:
        return {"error": self.error, "message": self.message}


class Unauthorized(ServiceError):
    """
    No usable session: credential missing/malformed/bad signature/expired, or no stored access token.
    The external message is the same for every cause; `reason` is for logs only.
    """

    status_code = 401
    error = "Unauthorized"
    MESSAGE = "Not signed in"

    def __init__(self, reason: str = "") -> None:
        super().__init__(self.MESSAGE)
        self.reason = reason


class NotSupported(ServiceError):
    status_code = 404
    error = "Unsupported CAPI endpoint"

    def body(self) -> dict:
        return {"error": self.error}


class UpstreamFailure(ServiceError):
    """Non-success response from the Frontier API; its status is passed through."""

    error = "Frontier API request failed"

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Upstream responded with status {status_code}")
        self.status_code = status_code

    def body(self) -> dict:
        return {"error": self.error, "status": self.status_code}


class SignInError(Exception):
    """A sign-in attempt failed; the caller is redirected to the error destination."""
