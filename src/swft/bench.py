from __future__ import annotations

import random
import threading
from dataclasses import dataclass

from .constants import DEFAULT_PACKET_SIZE, DEFAULT_TIMEOUT_MS
from .errors import IntegrityError, SwftError, TransferFailed
from .net import Impairment, UdpEndpoint
from .policy import RetryPolicy
from .receiver import ReceivedFile, Receiver
from .sender import StopAndWaitSender


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    duration_s: float
    throughput_mbps: float
    packets: int
    retransmits: int
    timeouts: int
    naks: int


def run_benchmark(
    *,
    size_bytes: int,
    loss_rate: float = 0.0,
    corrupt_rate: float = 0.0,
    delay_ms: int = 0,
    packet_size: int = DEFAULT_PACKET_SIZE,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_attempts: int | None = 50,
    seed: int | None = None,
) -> BenchmarkResult:
    """Send ``size_bytes`` of random data across loopback and check what arrives."""
    rng = random.Random(seed)
    payload = rng.randbytes(size_bytes)

    def impair() -> Impairment:
        return Impairment(loss_rate, corrupt_rate, delay_ms, rng=random.Random(rng.random()))

    recv_ep = UdpEndpoint.listening("127.0.0.1", 0, impairment=impair())
    recv_addr = recv_ep.address
    receiver = Receiver(
        recv_ep,
        packet_size=packet_size,
        timeout_ms=timeout_ms,
        linger_ms=timeout_ms * 4,
        max_idle=None if max_attempts is None else max_attempts * 2,
    )

    holder: dict[str, ReceivedFile | BaseException] = {}

    def recv_runner() -> None:
        try:
            holder["file"] = receiver.run()
        except (SwftError, OSError) as exc:
            holder["error"] = exc
        finally:
            recv_ep.close()

    t = threading.Thread(target=recv_runner, daemon=True)
    t.start()

    policy = RetryPolicy(timeout_ms=timeout_ms, max_attempts=max_attempts)
    with UdpEndpoint.sending(impairment=impair()) as send_ep:
        sender = StopAndWaitSender(send_ep, recv_addr, packet_size=packet_size, policy=policy)
        result = sender.run("bench.bin", payload)

    if not result.ok:
        # the receiver may still be waiting for a path unit; closing its socket ends the wait
        recv_ep.close()
    t.join(timeout=30.0)
    result.raise_for_failure()
    received = holder.get("file")
    if not isinstance(received, ReceivedFile):
        raise TransferFailed(f"receiver did not finish: {holder.get('error')}")
    if received.data != payload:
        raise IntegrityError("received bytes differ from the sent bytes")

    metrics = result.metrics
    duration_s = max(0.001, metrics.duration_s)
    return BenchmarkResult(
        bytes_transferred=size_bytes,
        duration_s=duration_s,
        throughput_mbps=(size_bytes * 8 / 1_000_000) / duration_s,
        packets=metrics.packets_sent,
        retransmits=metrics.retransmits,
        timeouts=metrics.timeouts,
        naks=metrics.naks,
    )
