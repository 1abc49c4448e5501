class AppError(Exception):
    """Base application error for the geolocation resolver."""


class ConfigurationError(AppError):
    """Raised at startup when the resolver configuration is malformed."""


class ResolverError(AppError):
    """Base error for failures surfaced by a lookup."""


class ProviderError(ResolverError):
    """Raised when a single upstream provider call fails.

    Carries the provider name and, when available, the underlying exception.
    These are recovered inside the lookup loop and only surface wrapped in
    AllAttemptsFailedError.
    """

    def __init__(self, provider: str, message: str, cause: BaseException | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.cause = cause


class NoProviderAvailableError(ResolverError):
    """Raised when no enabled, under-limit provider exists for a lookup."""


class AllAttemptsFailedError(ResolverError):
    """Raised when every candidate across every retry round failed."""

    def __init__(self, last_error: ProviderError) -> None:
        super().__init__(f"All lookup attempts failed, last error: {last_error}")
        self.last_error = last_error
