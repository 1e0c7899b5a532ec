from __future__ import annotations


class SwftError(Exception):
    pass


class ChecksumMismatch(SwftError, ValueError):
    """A packet whose checksum disagrees with its contents."""


class PayloadTooLarge(SwftError, ValueError):
    pass


class MalformedResponse(SwftError, ValueError):
    """A reply that is neither a valid ACK nor a valid NAK."""


class ProtocolError(SwftError):
    """A checksum-valid packet that violates the transfer protocol."""


class IntegrityError(SwftError):
    pass


class TransferFailed(SwftError):
    def __init__(self, message: str, unit: int | None = None):
        super().__init__(message)
        self.unit = unit
