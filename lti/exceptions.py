"""
Launch rejection reasons.

The pipeline never lets these escape :meth:`ToolProvider.execute`; they are
caught, logged and carried on the returned outcome so callers can tell why a
launch was refused.
"""


class LTIError(Exception):
    """Base class for all launch failures."""

    def __init__(self, reason=None):
        super().__init__(reason)
        self.reason = reason


class ProtocolError(LTIError):
    """Malformed or missing launch/OAuth parameters, unsupported version."""


class SignatureInvalid(LTIError):
    pass


class ReplayDetected(SignatureInvalid):
    pass


class TimestampExpired(SignatureInvalid):
    pass


class ConsumerRejected(LTIError):
    """Unknown, disabled, out-of-window or GUID-mismatched consumer."""


class ParameterConstraintViolation(LTIError):

    def __init__(self, parameters):
        self.parameters = list(parameters)
        super().__init__(f"Invalid parameter(s): {', '.join(self.parameters)}.")


class ShareRejected(LTIError):
    pass


class StorageFailure(LTIError):
    """Raised by storage connectors; never interpreted by the pipeline."""
