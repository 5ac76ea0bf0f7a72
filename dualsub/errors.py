from __future__ import annotations


class DualSubError(Exception):
    pass


class SpeechError(DualSubError):
    """Speech session failure. Fatal errors end the run."""

    fatal: bool = False


class CredentialMissing(SpeechError):
    fatal = True

    def __init__(self, provider: str) -> None:
        super().__init__(f"No credential configured for speech provider '{provider}'.")
        self.provider = provider


class PermissionDenied(SpeechError):
    fatal = True


class ConnectionFailed(SpeechError):
    fatal = True


class ReconnectExhausted(SpeechError):
    fatal = True

    def __init__(self, attempts: int, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Speech stream reconnect failed after {attempts} attempts{detail}")
        self.attempts = attempts
        self.cause = cause


class RecognitionFailed(SpeechError):
    """A single recognition request failed; the session keeps running."""


class FrameSourceError(DualSubError):
    pass


class TranslationError(DualSubError):
    """Per-request translation failure. Recoverable unless fatal is set."""

    fatal: bool = False


class AuthMissing(TranslationError):
    fatal = True


class NetworkError(TranslationError):
    pass


class TranslationTimeout(TranslationError):
    pass


class InvalidResponse(TranslationError):
    pass
