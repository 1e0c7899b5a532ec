"""Stop-and-wait file transfer (SWFT)

A file and its destination path travel over UDP as fixed-size, CRC-checked
packets. Each packet is resent until the receiver answers with a clean ACK:
- ``packet``: wire format, replies and the path-unit manifest
- ``sender`` / ``receiver``: the two halves of the exchange
- ``net``: the datagram transport they share
"""

from .errors import (
    ChecksumMismatch,
    IntegrityError,
    MalformedResponse,
    PayloadTooLarge,
    ProtocolError,
    SwftError,
    TransferFailed,
)
from .packet import Manifest, Packet, Reply, decode, encode
from .policy import RetryPolicy
from .receiver import ReceivedFile, Receiver
from .sender import StopAndWaitSender, TransferResult

__all__ = [
    "ChecksumMismatch",
    "IntegrityError",
    "MalformedResponse",
    "Manifest",
    "Packet",
    "PayloadTooLarge",
    "ProtocolError",
    "ReceivedFile",
    "Receiver",
    "Reply",
    "RetryPolicy",
    "StopAndWaitSender",
    "SwftError",
    "TransferFailed",
    "TransferResult",
    "decode",
    "encode",
]
