"""Exception taxonomy shared by the RPC node and the bridge relayer.

Request-scoped errors are converted to JSON-RPC error objects at the
dispatcher boundary; relayer errors are caught by the supervisor.
"""

from __future__ import annotations


class SheetChainError(RuntimeError):
    """Base exception for all SheetChain failures."""


class ValidationError(SheetChainError):
    """Raised for malformed addresses, hex strings, selectors or parameters.

    Always raised before any state mutation.
    """


class NonceMismatch(ValidationError):
    """Raised when strict nonce checking is enabled and the caller's nonce is stale."""

    def __init__(self, expected: int, supplied: int) -> None:
        super().__init__(f"Invalid nonce. Expected {expected}, got {supplied}")
        self.expected = expected
        self.supplied = supplied


class InsufficientBalance(SheetChainError):
    """Raised when a transfer costs more than the sender holds."""

    def __init__(self, required: int, available: int) -> None:
        super().__init__(f"Insufficient balance. Required: {required}, Available: {available}")
        self.required = required
        self.available = available


class ClaimError(SheetChainError):
    """Base class for claim state-machine violations."""


class AlreadyClaimed(ClaimError):
    """Raised when an address already holds a completed claim."""


class ClaimCapReached(ClaimError):
    """Raised once the number of completed claims reaches the configured cap."""


class ClaimNotFound(ClaimError):
    """Raised when a claim id does not exist."""


class ClaimNotPending(ClaimError):
    """Raised when a claim is processed outside the pending state."""


class MethodNotSupported(SheetChainError):
    """Raised for JSON-RPC methods the node does not implement."""

    def __init__(self, method: str) -> None:
        super().__init__(f"Method {method} not supported")
        self.method = method


class TransferExecutionError(SheetChainError):
    """Raised when a destination-chain payout fails during settlement."""


class UnsupportedRoute(TransferExecutionError):
    """Raised when no transfer strategy exists for a (source, destination) pair."""


class StoreUnavailable(SheetChainError):
    """Raised when the backing tabular store cannot be reached."""


class ConfigurationError(SheetChainError):
    """Raised at startup when required configuration is missing."""
