from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field

from .constants import DEFAULT_PACKET_SIZE, PATH_UNIT
from .errors import MalformedResponse, PayloadTooLarge, TransferFailed
from .net import Address, Transport
from .packet import Manifest, Reply, capacity, chunk, encode, unit_count
from .policy import RetryPolicy
from .receiver import Metrics

log = logging.getLogger(__name__)


class SenderState(enum.Enum):
    ANNOUNCING_PATH = "announcing-path"
    SENDING_CHUNK = "sending-chunk"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TransferResult:
    manifest: Manifest
    units_acked: int
    metrics: Metrics
    failure: TransferFailed | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def raise_for_failure(self) -> None:
        if self.failure is not None:
            raise self.failure


@dataclass(slots=True)
class StopAndWaitSender:
    transport: Transport
    dest: Address
    packet_size: int = DEFAULT_PACKET_SIZE
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    metrics: Metrics = field(default_factory=Metrics)
    state: SenderState = SenderState.ANNOUNCING_PATH
    current_unit: int = PATH_UNIT
    total_units: int = 0

    @property
    def chunk_capacity(self) -> int:
        return capacity(self.packet_size)

    def _await_reply(self, seq: int, timeout_s: float) -> bool:
        """Wait for a reply to ``seq``. True on ACK, False when a resend is due.

        ACKs for other units are stale and are skipped without resending.
        Raises TimeoutError once ``timeout_s`` has passed.
        """
        deadline = time.monotonic() + timeout_s
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(f"no reply for unit {seq}")
            raw, _ = self.transport.receive(remaining)
            try:
                reply = Reply.from_bytes(raw)
            except MalformedResponse as exc:
                self.metrics.malformed += 1
                log.debug("garbled reply for unit %d (%s)", seq, exc)
                return False
            if not reply.is_ack:
                self.metrics.naks += 1
                log.debug("NAK for unit %d", seq)
                return False
            if reply.unit == seq:
                return True
            self.metrics.duplicates += 1
            log.debug("stale ACK for unit %d while waiting on unit %d", reply.unit, seq)

    def _deliver(self, seq: int, payload: bytes) -> int:
        """Send one unit until it is acknowledged; return the number of sends."""
        packet = encode(seq, payload, self.packet_size)
        timeout_ms = float(self.policy.timeout_ms)
        attempts = 0

        while True:
            if self.policy.exhausted(attempts):
                raise TransferFailed(f"unit {seq} not acknowledged after {attempts} attempts", unit=seq)
            attempts += 1
            if attempts > 1:
                self.metrics.retransmits += 1
                log.debug("resending unit %d (attempt %d)", seq, attempts)
            else:
                log.debug("sending unit %d (%d bytes)", seq, len(payload))
            self.metrics.packets_sent += 1
            self.metrics.bytes_sent += len(payload)
            self.transport.send(packet, self.dest)

            try:
                acked = self._await_reply(seq, timeout_ms / 1000.0)
            except TimeoutError:
                self.metrics.timeouts += 1
                timeout_ms = self.policy.next_timeout_ms(timeout_ms)
                log.debug("timeout on unit %d; next wait %.0f ms", seq, timeout_ms)
                continue

            if acked:
                self.metrics.units_acked += 1
                log.debug("unit %d acknowledged after %d send(s)", seq, attempts)
                return attempts

    def announce_destination(self, path: str, data: bytes) -> Manifest:
        manifest = Manifest.for_file(path, data, self.chunk_capacity)
        payload = manifest.to_payload()
        self.state = SenderState.ANNOUNCING_PATH
        self.current_unit = PATH_UNIT
        self.total_units = manifest.units
        self._deliver(PATH_UNIT, payload)
        log.info("path unit acknowledged: %s (%d data units)", path, manifest.units)
        return manifest

    def send_file(self, data: bytes) -> None:
        self.total_units = unit_count(len(data), self.chunk_capacity)
        for seq, piece in enumerate(chunk(data, self.chunk_capacity), start=1):
            self.state = SenderState.SENDING_CHUNK
            self.current_unit = seq
            self._deliver(seq, piece)
        self.state = SenderState.DONE

    def run(self, path: str, data: bytes) -> TransferResult:
        # built up front so an oversized path fails before anything is sent
        manifest = Manifest.for_file(path, data, self.chunk_capacity)
        if len(manifest.to_payload()) > self.chunk_capacity:
            raise PayloadTooLarge(f"destination path too long for a {self.packet_size}-byte packet: {path!r}")

        log.info("SW send start; %d bytes in %d units to %s:%d", len(data), manifest.units, *self.dest)
        failure = None
        try:
            self.announce_destination(path, data)
            self.send_file(data)
        except TransferFailed as exc:
            self.state = SenderState.FAILED
            failure = exc
            log.error("transfer failed: %s", exc)

        self.metrics.end_ts = time.monotonic()
        if failure is None:
            log.info(
                "done; %d units acknowledged, %d retransmits, throughput=%.2f Mbps",
                self.metrics.units_acked,
                self.metrics.retransmits,
                self.metrics.throughput_mbps,
            )
        return TransferResult(
            manifest=manifest,
            units_acked=self.metrics.units_acked,
            metrics=self.metrics,
            failure=failure,
        )
