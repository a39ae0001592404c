"""Domain exceptions for the FIPE cache."""


class FipeError(Exception):
    """Base exception for all FIPE cache errors."""
    pass


class UpstreamError(FipeError):
    """The FIPE API call failed (network, non-2xx status or malformed body).

    `retryable` is set for transport failures and 5xx responses only.
    """

    def __init__(self, message, status_code=None, retryable=False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ValueNotFoundError(FipeError):
    """No cached price for the requested year, brand and model."""
    pass


class RefreshInProgressError(FipeError):
    """Another refresh is already running."""
    pass
