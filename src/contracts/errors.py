"""
Typed errors for the search core.

Provider clients return ProviderError / NotConfiguredError instances instead
of raising them so the orchestrator can branch on the value. The other
errors are raised and caught at the orchestrator boundary, where every one
of them becomes a failed SearchResultEnvelope.
"""

from typing import Any

from contracts.models import ErrorKind, Provider, ProviderFailure


class SearchCoreError(Exception):
    """Base class for every error produced by the search core."""

    kind: ErrorKind = ErrorKind.PROVIDER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


class ValidationError(SearchCoreError):
    """Malformed or out-of-range request field."""

    kind = ErrorKind.VALIDATION


class RateLimitedError(SearchCoreError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, provider: Provider | str, retry_after: int):
        provider = Provider(provider)
        super().__init__(
            f"Rate limit exceeded for {provider.value}. Please wait {retry_after} seconds."
        )
        self.provider = provider
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(provider=self.provider.value, retry_after=self.retry_after)
        return data


class ProviderError(SearchCoreError):
    """Timeout, transport failure, bad status or provider-reported error."""

    kind = ErrorKind.PROVIDER_ERROR

    def __init__(
        self,
        provider: Provider | str,
        reason: ProviderFailure,
        message: str,
        status_code: int | None = None,
        transient: bool = False,
    ):
        super().__init__(message)
        self.provider = Provider(provider)
        self.reason = reason
        self.status_code = status_code
        self.transient = transient

    def __repr__(self) -> str:
        return (
            f"ProviderError(provider={self.provider.value}, reason={self.reason.value}, "
            f"status_code={self.status_code}, transient={self.transient})"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            provider=self.provider.value,
            reason=self.reason.value,
            status_code=self.status_code,
            transient=self.transient,
        )
        return data


class CacheError(SearchCoreError):
    """Backend failure. Absorbed by the cache layer and never shown to callers."""

    kind = ErrorKind.CACHE_ERROR


class NotConfiguredError(SearchCoreError):
    kind = ErrorKind.NOT_CONFIGURED

    def __init__(self, provider: Provider | str, message: str | None = None):
        provider = Provider(provider)
        super().__init__(message or f"{provider.value} API credentials not configured")
        self.provider = provider
