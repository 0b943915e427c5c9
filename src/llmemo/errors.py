from __future__ import annotations


class LlmemoError(RuntimeError):
    """Base class for every error raised by llmemo."""


class ConfigError(LlmemoError):
    """Missing or invalid configuration, usually the API key."""


class AuthError(LlmemoError):
    """The transcription provider rejected the credential or token."""


class QuotaError(LlmemoError):
    """The provider account has run out of transcription quota."""


class NetworkError(LlmemoError):
    """Transport failure while fetching a token or streaming audio."""


class PersistenceError(LlmemoError):
    """Reading or writing the archive document failed."""


class SessionBusyError(LlmemoError):
    """A connect is already in flight or the session is already live."""
