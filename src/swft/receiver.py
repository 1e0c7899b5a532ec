from __future__ import annotations

import enum
import hashlib
import logging
import time
from dataclasses import dataclass, field

from .constants import DEFAULT_LINGER_MS, DEFAULT_PACKET_SIZE, DEFAULT_TIMEOUT_MS, PATH_UNIT
from .errors import ChecksumMismatch, IntegrityError, ProtocolError, TransferFailed
from .net import Address, Transport
from .packet import Manifest, Packet, Reply, capacity, decode

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Metrics:
    packets_sent: int = 0
    bytes_sent: int = 0
    units_acked: int = 0
    retransmits: int = 0
    timeouts: int = 0
    naks: int = 0
    malformed: int = 0
    duplicates: int = 0
    ignored: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_sent * 8 / 1_000_000) / self.duration_s

    def summary(self) -> dict:
        return {
            "packets": self.packets_sent,
            "bytes": self.bytes_sent,
            "units_acked": self.units_acked,
            "retransmits": self.retransmits,
            "timeouts": self.timeouts,
            "naks": self.naks,
            "malformed": self.malformed,
            "duplicates": self.duplicates,
            "ignored": self.ignored,
            "seconds": self.duration_s,
            "mbps": self.throughput_mbps,
        }


class ReceiverState(enum.Enum):
    AWAITING_PATH = "awaiting-path"
    AWAITING_CHUNK = "awaiting-chunk"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class ReceivedFile:
    path: str
    data: bytes
    manifest: Manifest
    metrics: Metrics


@dataclass(slots=True)
class Receiver:
    """Receiving half of the stop-and-wait exchange.

    Every checksum-valid packet is acknowledged, but only the packet carrying
    ``next_expected`` changes the transfer. Corrupt packets get a NAK. Once
    complete, only exact retransmits of accepted units are acknowledged.
    """

    transport: Transport
    packet_size: int = DEFAULT_PACKET_SIZE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    linger_ms: int = DEFAULT_LINGER_MS
    max_idle: int | None = None
    metrics: Metrics = field(default_factory=Metrics)
    state: ReceiverState = ReceiverState.AWAITING_PATH
    manifest: Manifest | None = None
    reassembled: bytearray = field(default_factory=bytearray)
    next_expected: int = PATH_UNIT

    @property
    def destination_path(self) -> str | None:
        return self.manifest.path if self.manifest else None

    @property
    def complete(self) -> bool:
        return self.state is ReceiverState.COMPLETE

    def _reply(self, reply: Reply, addr: Address) -> None:
        self.transport.send(reply.to_bytes(), addr)
        self.metrics.packets_sent += 1

    def _require_manifest(self) -> Manifest:
        if self.manifest is None:
            raise ProtocolError("no path unit has been accepted")
        return self.manifest

    def _is_retransmit(self, packet: Packet) -> bool:
        """True if ``packet`` repeats a unit this receiver already accepted."""
        manifest = self._require_manifest()
        if packet.is_path_unit:
            try:
                return Manifest.from_payload(packet.payload) == manifest
            except ProtocolError:
                return False
        if not 1 <= packet.seq <= manifest.units:
            return False
        start = (packet.seq - 1) * capacity(self.packet_size)
        end = min(start + capacity(self.packet_size), manifest.size)
        return bytes(self.reassembled[start:end]) == packet.payload

    def receive_unit(self, timeout: float | None = None) -> Packet | None:
        """Handle one datagram. Returns the packet if it advanced the transfer.

        Raises TimeoutError when nothing arrives within ``timeout`` seconds.
        """
        raw, addr = self.transport.receive(timeout)
        try:
            packet = decode(raw, self.packet_size)
        except ChecksumMismatch as exc:
            self.metrics.naks += 1
            log.debug("corrupt packet from %s (%s); NAK, expecting unit %d", addr, exc, self.next_expected)
            self._reply(Reply.nak(self.next_expected), addr)
            return None

        if self.complete:
            if self._is_retransmit(packet):
                self.metrics.duplicates += 1
                log.debug("transfer complete; re-ACK retransmitted unit %d", packet.seq)
                self._reply(Reply.ack(packet.seq), addr)
            else:
                self.metrics.ignored += 1
                log.debug("transfer complete; ignoring unit %d from %s", packet.seq, addr)
            return None

        if packet.seq != self.next_expected:
            self.metrics.duplicates += 1
            log.debug("unit %d is not the expected unit %d; re-ACK", packet.seq, self.next_expected)
            self._reply(Reply.ack(packet.seq), addr)
            return None

        if packet.is_path_unit:
            manifest = Manifest.from_payload(packet.payload)
            self._reply(Reply.ack(packet.seq), addr)
            self.manifest = manifest
            log.info(
                "path unit accepted: path=%s units=%d size=%d", manifest.path, manifest.units, manifest.size
            )
        else:
            manifest = self._require_manifest()
            self._reply(Reply.ack(packet.seq), addr)
            self.reassembled += packet.payload
            self.metrics.bytes_sent += len(packet.payload)
            log.debug("unit %d accepted (%d bytes)", packet.seq, len(packet.payload))

        self.metrics.units_acked += 1
        self.next_expected += 1
        if self.next_expected > manifest.units:
            self.state = ReceiverState.COMPLETE
        else:
            self.state = ReceiverState.AWAITING_CHUNK
        return packet

    def verify(self) -> bytes:
        """Check the reassembled bytes against the manifest and return a copy of them."""
        manifest = self._require_manifest()
        data = bytes(self.reassembled)
        if len(data) != manifest.size:
            raise IntegrityError(f"size mismatch: expected {manifest.size} got {len(data)}")
        actual = hashlib.sha1(data).hexdigest()
        if actual != manifest.sha1:
            raise IntegrityError(f"SHA-1 mismatch: expected {manifest.sha1} got {actual}")
        return data

    def linger(self) -> None:
        """Keep re-acknowledging retransmits until the line goes quiet."""
        if self.linger_ms <= 0:
            return
        while True:
            try:
                self.receive_unit(self.linger_ms / 1000.0)
            except TimeoutError:
                return

    def run(self) -> ReceivedFile:
        log.info("receiver waiting for a path unit")
        idle = 0
        while not self.complete:
            try:
                self.receive_unit(self.timeout_ms / 1000.0)
            except TimeoutError:
                if self.state is ReceiverState.AWAITING_PATH:
                    continue
                idle += 1
                if self.max_idle is not None and idle >= self.max_idle:
                    raise TransferFailed(
                        f"no packet for {idle} consecutive timeouts", unit=self.next_expected
                    ) from None
                continue
            idle = 0

        manifest = self._require_manifest()
        data = self.verify()
        self.linger()
        self.metrics.end_ts = time.monotonic()
        log.info("receiver done; %d bytes for %s", len(data), manifest.path)
        return ReceivedFile(path=manifest.path, data=data, manifest=manifest, metrics=self.metrics)
