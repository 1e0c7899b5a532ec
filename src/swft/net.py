from __future__ import annotations

import logging
import random
import socket
import time
from dataclasses import dataclass, field
from typing import Protocol, Tuple

Address = Tuple[str, int]

log = logging.getLogger(__name__)


class Transport(Protocol):
    """Best-effort datagram delivery: may drop, reorder or corrupt."""

    def send(self, data: bytes, addr: Address) -> None: ...

    def receive(self, timeout: float | None = None) -> Tuple[bytes, Address]:
        """Block for one datagram; raise TimeoutError when ``timeout`` seconds pass."""
        ...


@dataclass(frozen=True, slots=True)
class Impairment:
    loss_rate: float = 0.0
    corrupt_rate: float = 0.0
    delay_ms: int = 0
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and self.rng.random() < self.loss_rate

    def maybe_corrupt(self, data: bytes) -> bytes:
        if not data or self.corrupt_rate <= 0 or self.rng.random() >= self.corrupt_rate:
            return data
        garbled = bytearray(data)
        bit = self.rng.randrange(len(garbled) * 8)
        garbled[bit // 8] ^= 1 << (bit % 8)
        return bytes(garbled)

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class UdpEndpoint:
    def __init__(self, sock: socket.socket, impairment: Impairment | None = None, bufsize: int = 65535):
        self.sock = sock
        self.impairment = impairment or Impairment()
        self.bufsize = bufsize

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError:
            sock.close()
            raise
        return cls(sock, impairment)

    @classmethod
    def sending(cls, impairment: Impairment | None = None) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        return cls(sock, impairment)

    @property
    def address(self) -> Address:
        return self.sock.getsockname()

    def send(self, data: bytes, addr: Address) -> None:
        if self.impairment.should_drop():
            log.debug("dropped outbound %d bytes to %s", len(data), addr)
            return
        self.impairment.sleep_if_needed()
        self.sock.sendto(self.impairment.maybe_corrupt(data), addr)

    def receive(self, timeout: float | None = None) -> Tuple[bytes, Address]:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if deadline is None:
                self.sock.settimeout(None)
            else:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("no datagram before deadline")
                self.sock.settimeout(remaining)
            data, addr = self.sock.recvfrom(self.bufsize)
            if self.impairment.should_drop():
                log.debug("dropped inbound %d bytes from %s", len(data), addr)
                continue
            return data, addr

    def close(self) -> None:
        self.sock.close()

    def __enter__(self) -> "UdpEndpoint":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
