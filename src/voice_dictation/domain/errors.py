ACCESS_DENIED_CLOSE_CODE = 1008
NORMAL_CLOSE_CODE = 1000

ACCESS_DENIED_MESSAGE = "Access denied. Please check your subscription plan."


class DictationError(Exception):
    """Base for every failure that ends a dictation session.

    ``str(exc)`` is the human-readable message handed to the error callback.
    """


class CapabilityError(DictationError):
    pass


class CredentialMissingError(CapabilityError):
    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class MicrophoneNotFoundError(CapabilityError):
    def __init__(self, message: str = "No microphone found. Please connect a microphone.") -> None:
        super().__init__(message)


class MicrophonePermissionError(CapabilityError):
    def __init__(
        self,
        message: str = "Microphone permission denied. Please allow microphone access.",
    ) -> None:
        super().__init__(message)


class UnsupportedEncodingError(CapabilityError):
    pass


class InactiveInputError(CapabilityError):
    pass


class HandshakeError(DictationError):
    pass


class ProtocolError(DictationError):
    pass


class AccessDeniedError(DictationError):
    def __init__(
        self,
        message: str = ACCESS_DENIED_MESSAGE,
        code: int = ACCESS_DENIED_CLOSE_CODE,
        upgrade_required: bool = True,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.upgrade_required = upgrade_required


class ConnectionLostError(DictationError):
    def __init__(self, message: str = "Connection lost", code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class DeviceRuntimeError(DictationError):
    def __init__(self, message: str = "Recording error occurred") -> None:
        super().__init__(message)


class ServiceReportedError(DictationError):
    pass
