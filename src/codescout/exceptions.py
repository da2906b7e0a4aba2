"""Custom exceptions for codescout."""


class CodeScoutError(Exception):
    """Base exception for all codescout errors."""


class ConfigError(CodeScoutError):
    """Configuration-related errors."""


class LLMError(CodeScoutError):
    """LLM provider errors."""


class ScoutError(CodeScoutError):
    """Invalid scout invocation (bad queries, bad working directory)."""


class ScoutCancelled(CodeScoutError):
    """Raised inside an agent when the shared cancellation signal fires."""


class ProviderNotAvailableError(LLMError):
    """Raised when an LLM provider's SDK is not installed."""

    def __init__(self, provider: str, package: str):
        super().__init__(
            f"Provider '{provider}' requires the '{package}' package. "
            f"Install it with: pip install codescout[{provider}]"
        )
