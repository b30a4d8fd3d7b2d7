from __future__ import annotations


class DomainError(Exception):
    """Base for domain errors."""


class ClientInputError(DomainError):
    """Request rejected before any I/O."""


class InvalidPoolAddressError(ClientInputError):
    """Pool address is neither a 20-byte address nor a 32-byte pool id."""


class MissingTokenPairError(ClientInputError):
    """Wide pool ids need both token addresses."""


class UnsupportedChainError(ClientInputError):
    """Chain is not configured."""


class TransportError(DomainError):
    """Network failure after the retry budget was spent."""


class GatewayTimeoutError(TransportError):
    """Request timed out."""


class PollTimeoutError(TransportError):
    """Status polling exceeded its wall-clock cap."""


class ProviderError(DomainError):
    """Definitive non-2xx answer or malformed payload from a provider."""


class QueryFailedError(ProviderError):
    """Asynchronous query reached a failed or cancelled state."""


class RpcCallError(ProviderError):
    """JSON-RPC call returned an error object (revert, bad params)."""


class ParseError(DomainError):
    """A single event row could not be parsed."""


class SyncUnauthorizedError(DomainError):
    """Sync trigger without a valid key."""
