from __future__ import annotations

from collections import deque
from typing import Callable, Optional

import pytest

from swft.constants import HEADER_SIZE, HEADER_STRUCT
from swft.receiver import Receiver

SENDER_ADDR = ("10.0.0.1", 40000)
RECEIVER_ADDR = ("10.0.0.2", 9000)

# (datagram, index of that datagram on its direction) -> datagram to deliver, or None to drop
Filter = Callable[[bytes, int], Optional[bytes]]


def seq_of(raw: bytes) -> int:
    return HEADER_STRUCT.unpack_from(raw)[1]


def flip(raw: bytes, offset: int = HEADER_SIZE, mask: int = 0x01) -> bytes:
    garbled = bytearray(raw)
    garbled[offset] ^= mask
    return bytes(garbled)


class QueueTransport:
    """Delivers queued datagrams in order; raises TimeoutError once empty."""

    def __init__(self, inbox=(), peer=SENDER_ADDR):
        self.inbox = deque(inbox)
        self.peer = peer
        self.sent: list[tuple[bytes, tuple[str, int]]] = []
        self.timeouts: list[float | None] = []

    def send(self, data, addr):
        self.sent.append((data, addr))

    def receive(self, timeout=None):
        if not self.inbox:
            self.timeouts.append(timeout)
            raise TimeoutError("inbox empty")
        return self.inbox.popleft(), self.peer


class Link:
    """A simulated network between one sender and one receiver.

    Runs on a single thread: whenever the sender waits for a reply, the
    receiver is stepped until it has answered or has nothing left to read.
    """

    def __init__(self, forward: Filter | None = None, backward: Filter | None = None, **receiver_kwargs):
        self.forward = forward or (lambda data, n: data)
        self.backward = backward or (lambda data, n: data)
        self.to_receiver: deque[bytes] = deque()
        self.to_sender: deque[bytes] = deque()
        self.sent_by_sender: list[bytes] = []
        self.sent_by_receiver: list[bytes] = []
        self.sender_end = _SenderEnd(self)
        self.receiver_end = _ReceiverEnd(self)
        receiver_kwargs.setdefault("linger_ms", 0)
        self.receiver = Receiver(self.receiver_end, **receiver_kwargs)
        self.accepted = []

    def pump(self) -> None:
        while not self.to_sender and self.to_receiver:
            packet = self.receiver.receive_unit(0)
            if packet is not None:
                self.accepted.append(packet)

    def sends_of(self, seq: int) -> int:
        return sum(1 for raw in self.sent_by_sender if seq_of(raw) == seq)


class _SenderEnd:
    def __init__(self, link: Link):
        self.link = link

    def send(self, data, addr):
        link = self.link
        link.sent_by_sender.append(data)
        delivered = link.forward(data, len(link.sent_by_sender) - 1)
        if delivered is not None:
            link.to_receiver.append(delivered)

    def receive(self, timeout=None):
        self.link.pump()
        if not self.link.to_sender:
            raise TimeoutError("no reply")
        return self.link.to_sender.popleft(), RECEIVER_ADDR


class _ReceiverEnd:
    def __init__(self, link: Link):
        self.link = link

    def send(self, data, addr):
        link = self.link
        link.sent_by_receiver.append(data)
        delivered = link.backward(data, len(link.sent_by_receiver) - 1)
        if delivered is not None:
            link.to_sender.append(delivered)

    def receive(self, timeout=None):
        if not self.link.to_receiver:
            raise TimeoutError("nothing queued")
        return self.link.to_receiver.popleft(), SENDER_ADDR


@pytest.fixture
def link():
    return Link()
