"""Custom exceptions for the zapwallet payment layer."""


class WalletError(Exception):
    """Base exception for all wallet-layer errors."""

    pass


# =============================================================================
# Connection Layer Exceptions
# =============================================================================


class ConnectionError(WalletError):
    """Raised when a wallet or relay connection cannot be established."""

    pass


class ConnectionTimeout(ConnectionError):
    """Raised when the relay socket does not open within the allowed time."""

    def __init__(self, url: str, timeout: float) -> None:
        super().__init__(f"Relay connection to {url} timed out after {timeout:.1f}s")
        self.url = url
        self.timeout = timeout


class ConnectionRejected(ConnectionError):
    """Raised when the socket reports closure before the open handshake completes."""

    def __init__(self, url: str, reason: str = "") -> None:
        message = f"Relay {url} closed the connection before it was established"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.url = url
        self.reason = reason


class InvalidConnectionString(ConnectionError):
    """Raised when a Wallet Connect URI cannot be parsed."""

    pass


class NotConnectedError(ConnectionError):
    """Raised when an operation needs a live session that does not exist."""

    pass


class PublishRejected(ConnectionError):
    """Raised when the relay explicitly refuses a published event."""

    def __init__(self, event_id: str, reason: str = "") -> None:
        super().__init__(f"Relay rejected event {event_id[:8]}: {reason or 'no reason given'}")
        self.event_id = event_id
        self.reason = reason


# =============================================================================
# RPC Layer Exceptions
# =============================================================================


class RpcTimeout(WalletError):
    """Raised when no matching response arrives before the request deadline."""

    def __init__(self, method: str, timeout: float) -> None:
        super().__init__(f"Wallet did not answer {method} within {timeout:.1f}s")
        self.method = method
        self.timeout = timeout


class RpcError(WalletError):
    """Raised when the remote wallet answers with a structured error.

    Attributes:
        code: Error code reported by the wallet (e.g. INSUFFICIENT_BALANCE).
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class MalformedResponse(RpcError):
    """Raised when a response cannot be decrypted or decoded."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="MALFORMED_RESPONSE")


# =============================================================================
# Input / Backend Exceptions
# =============================================================================


class ValidationError(WalletError):
    """Raised for bad user input, before any network attempt is made."""

    pass


class BackendUnavailable(WalletError):
    """Raised when the selected wallet kind has no usable backend present."""

    pass


class UnsupportedOperation(WalletError):
    """Raised when a backend does not implement the requested verb."""

    pass


class LnurlError(WalletError):
    """Raised when a Lightning address cannot be resolved or paid."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageError(WalletError):
    """Raised when the wallet registry cannot be read or written."""

    pass
