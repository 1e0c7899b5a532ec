from __future__ import annotations

import enum
import hashlib
import json
import math
import zlib
from dataclasses import dataclass

from .constants import (
    ACK,
    COVERED_STRUCT,
    DEFAULT_PACKET_SIZE,
    HEADER_SIZE,
    HEADER_STRUCT,
    MAX_SEQ,
    NAK,
    REPLY_SIZE,
    REPLY_STRUCT,
)
from .errors import ChecksumMismatch, MalformedResponse, PayloadTooLarge, ProtocolError


def capacity(packet_size: int = DEFAULT_PACKET_SIZE) -> int:
    if packet_size <= HEADER_SIZE:
        raise ValueError(f"packet size must exceed the {HEADER_SIZE}-byte header, got {packet_size}")
    return packet_size - HEADER_SIZE


def checksum(seq: int, payload: bytes) -> int:
    """CRC-32 over seq, payload length and the used payload bytes only."""
    crc = zlib.crc32(COVERED_STRUCT.pack(seq, len(payload)))
    return zlib.crc32(payload, crc) & 0xFFFFFFFF


@dataclass(frozen=True, slots=True)
class Packet:
    seq: int
    payload: bytes = b""

    @property
    def is_path_unit(self) -> bool:
        return self.seq == 0


def encode(seq: int, payload: bytes, packet_size: int = DEFAULT_PACKET_SIZE) -> bytes:
    cap = capacity(packet_size)
    if len(payload) > cap:
        raise PayloadTooLarge(f"payload too large: {len(payload)} > {cap}")
    if not 0 <= seq <= MAX_SEQ:
        raise ValueError(f"sequence number out of range: {seq}")

    buf = bytearray(packet_size)
    HEADER_STRUCT.pack_into(buf, 0, checksum(seq, payload), seq, len(payload))
    buf[HEADER_SIZE : HEADER_SIZE + len(payload)] = payload
    return bytes(buf)


def decode(raw: bytes, packet_size: int = DEFAULT_PACKET_SIZE) -> Packet:
    if len(raw) < HEADER_SIZE:
        raise ChecksumMismatch(f"datagram too small to be a packet: {len(raw)} bytes")

    received, seq, length = HEADER_STRUCT.unpack_from(raw)
    # a corrupted length field cannot be checksummed; report it like any other corruption
    if length > capacity(packet_size) or HEADER_SIZE + length > len(raw):
        raise ChecksumMismatch(f"payload length {length} does not fit a {len(raw)}-byte datagram")

    payload = bytes(raw[HEADER_SIZE : HEADER_SIZE + length])
    expected = checksum(seq, payload)
    if received != expected:
        raise ChecksumMismatch(f"checksum mismatch: got {received:#x}, computed {expected:#x}")
    return Packet(seq=seq, payload=payload)


class Verdict(enum.IntEnum):
    NAK = NAK
    ACK = ACK


@dataclass(frozen=True, slots=True)
class Reply:
    verdict: Verdict
    unit: int

    @property
    def is_ack(self) -> bool:
        return self.verdict is Verdict.ACK

    def to_bytes(self) -> bytes:
        body = REPLY_STRUCT.pack(0, int(self.verdict), self.unit)[4:]
        return REPLY_STRUCT.pack(zlib.crc32(body) & 0xFFFFFFFF, int(self.verdict), self.unit)

    @staticmethod
    def from_bytes(raw: bytes) -> "Reply":
        if len(raw) != REPLY_SIZE:
            raise MalformedResponse(f"reply must be {REPLY_SIZE} bytes, got {len(raw)}")
        crc, verdict, unit = REPLY_STRUCT.unpack(raw)
        if zlib.crc32(raw[4:]) & 0xFFFFFFFF != crc:
            raise MalformedResponse("reply checksum mismatch")
        try:
            return Reply(Verdict(verdict), unit)
        except ValueError:
            raise MalformedResponse(f"unknown verdict {verdict:#x}") from None

    @staticmethod
    def ack(unit: int) -> "Reply":
        return Reply(Verdict.ACK, unit)

    @staticmethod
    def nak(unit: int) -> "Reply":
        return Reply(Verdict.NAK, unit)


@dataclass(frozen=True, slots=True)
class Manifest:
    """Unit 0 payload: where the file goes and how many data units follow."""

    path: str
    units: int
    size: int
    sha1: str

    @classmethod
    def for_file(cls, path: str, data: bytes, chunk_capacity: int) -> "Manifest":
        return cls(
            path=path,
            units=unit_count(len(data), chunk_capacity),
            size=len(data),
            sha1=hashlib.sha1(data).hexdigest(),
        )

    def to_payload(self) -> bytes:
        meta = {"path": self.path, "units": self.units, "size": self.size, "sha1": self.sha1}
        return json.dumps(meta, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes) -> "Manifest":
        try:
            meta = json.loads(payload.decode("utf-8"))
            manifest = cls(
                path=str(meta["path"]),
                units=int(meta["units"]),
                size=int(meta["size"]),
                sha1=str(meta["sha1"]),
            )
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            raise ProtocolError(f"unreadable path unit: {exc}") from exc
        if manifest.units < 0 or manifest.size < 0:
            raise ProtocolError(f"negative counts in path unit: {meta}")
        return manifest


def unit_count(size: int, chunk_capacity: int) -> int:
    return math.ceil(size / chunk_capacity)


def chunk(data: bytes, chunk_capacity: int) -> list[bytes]:
    return [
        data[(i - 1) * chunk_capacity : min(i * chunk_capacity, len(data))]
        for i in range(1, unit_count(len(data), chunk_capacity) + 1)
    ]
