from typing import List, Optional


class GpsBuddyException(Exception):
    """Base exception class for GPSBuddy client errors."""

    message = "An error occurred while talking to GPSBuddy."

    def __init__(self, message: str = "An error occurred while talking to GPSBuddy."):
        self.message = message or self.message
        super().__init__(self.message)


class GpsBuddyConfigurationException(GpsBuddyException):
    """Exception for missing GPSBuddy credentials."""

    message = "GPS module is missing required configuration."

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(f"{self.message} Missing: {', '.join(self.missing)}")


class GpsBuddyTransportException(GpsBuddyException):
    """Exception for network failures and timeouts. Retryable."""

    message = "GPSBuddy request failed."

    def __init__(self, url: str, details: str = ""):
        self.url = url
        self.details = details
        message = f"{self.message} URL: {url}"
        if details != "":
            message += f" Details: {details}"
        super().__init__(message)


class GpsBuddyHTTPException(GpsBuddyTransportException):
    """Exception for non-2xx responses. Retryable."""

    message = "GPSBuddy returned an unexpected HTTP status."

    def __init__(self, url: str, status_code: int, details: str = ""):
        self.status_code = status_code
        super().__init__(url, f"Status Code: {status_code} {details}".strip())


class GpsBuddyTokenException(GpsBuddyException):
    """Exception for an InitializeSession response without a usable token."""

    message = "Could not obtain a GPSBuddy session token."

    def __init__(self, summary: str):
        self.summary = summary
        super().__init__(f"{self.message} Response: {summary}")


class GpsBuddyAuthException(GpsBuddyException):
    """Exception for credentials or token rejected by the upstream."""

    message = "GPSBuddy rejected the authentication."

    def __init__(self, function_name: str, details: str = ""):
        self.function_name = function_name
        self.details = details
        message = f"{self.message} Function: {function_name}"
        if details != "":
            message += f" Details: {details}"
        super().__init__(message)


class GpsBuddyApiException(GpsBuddyException):
    """Exception for an API-level error object in an otherwise valid response."""

    message = "GPSBuddy returned an error."

    def __init__(self, function_name: str, details: str = ""):
        self.function_name = function_name
        self.details = details
        message = f"{self.message} Function: {function_name}"
        if details != "":
            message += f" Details: {details}"
        super().__init__(message)


class GpsBuddyResponseShapeException(GpsBuddyException):
    """Exception for a payload with no recognizable vehicle array."""

    message = "GPSBuddy response has no vehicle list."

    def __init__(self, function_name: str, summary: str):
        self.function_name = function_name
        self.summary = summary
        super().__init__(
            f"{self.message} Function: {function_name}, Response: {summary}"
        )


class GpsBuddyFetchException(GpsBuddyException):
    """Exception raised when every live endpoint and strategy has failed."""

    message = "GPSBuddy live data could not be fetched."

    def __init__(self, attempted: List[str], last_error: Optional[Exception] = None):
        self.attempted = list(attempted)
        self.last_error = last_error
        message = f"{self.message} Tried: {', '.join(self.attempted)}"
        if last_error is not None:
            message += f" Last error: {last_error}"
        super().__init__(message)
