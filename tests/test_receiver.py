from __future__ import annotations

import pytest

from conftest import SENDER_ADDR, QueueTransport, flip
from swft.errors import IntegrityError, ProtocolError, TransferFailed
from swft.packet import Manifest, Reply, chunk, encode
from swft.receiver import Receiver, ReceiverState


def path_unit(path: str, data: bytes) -> bytes:
    return encode(0, Manifest.for_file(path, data, 984).to_payload())


def data_units(data: bytes) -> list[bytes]:
    return [encode(i, piece) for i, piece in enumerate(chunk(data, 984), start=1)]


def replies(transport: QueueTransport) -> list[Reply]:
    return [Reply.from_bytes(raw) for raw, _ in transport.sent]


def test_corrupt_packet_gets_nak_and_no_state_change():
    transport = QueueTransport([flip(path_unit("f", b"abc"))])
    receiver = Receiver(transport)

    assert receiver.receive_unit() is None
    assert replies(transport) == [Reply.nak(0)]
    assert transport.sent[0][1] == SENDER_ADDR
    assert receiver.state is ReceiverState.AWAITING_PATH
    assert receiver.next_expected == 0
    assert receiver.destination_path is None


def test_path_unit_then_chunks():
    data = b"0123456789" * 200
    transport = QueueTransport([path_unit("out/copy.bin", data), *data_units(data)])
    receiver = Receiver(transport)

    first = receiver.receive_unit()
    assert first is not None and first.seq == 0
    assert receiver.destination_path == "out/copy.bin"
    assert receiver.state is ReceiverState.AWAITING_CHUNK
    assert receiver.next_expected == 1

    while not receiver.complete:
        receiver.receive_unit()

    assert bytes(receiver.reassembled) == data
    assert replies(transport) == [Reply.ack(0), Reply.ack(1), Reply.ack(2), Reply.ack(3)]


def test_duplicate_is_reacked_without_mutation():
    data = b"x" * 1500
    units = data_units(data)
    transport = QueueTransport([path_unit("f", data), units[0], units[0], path_unit("f", data)])
    receiver = Receiver(transport)
    for _ in range(4):
        receiver.receive_unit()

    assert bytes(receiver.reassembled) == data[:984]
    assert receiver.next_expected == 2
    assert receiver.metrics.duplicates == 2
    assert replies(transport) == [Reply.ack(0), Reply.ack(1), Reply.ack(1), Reply.ack(0)]


def test_empty_file_completes_on_path_unit():
    transport = QueueTransport([path_unit("empty.bin", b"")])
    receiver = Receiver(transport, linger_ms=0)
    received = receiver.run()

    assert received.path == "empty.bin"
    assert received.data == b""
    assert receiver.complete


def test_run_survives_noise_and_lingers_for_retransmits():
    data = bytes(range(256)) * 9
    units = data_units(data)
    transport = QueueTransport(
        [
            b"garbage",
            path_unit("dir/file.bin", data),
            flip(units[0], offset=20),
            units[0],
            units[1],
            units[2],
            units[2],
        ]
    )
    received = Receiver(transport, linger_ms=50).run()

    assert received.path == "dir/file.bin"
    assert received.data == data
    assert received.manifest.units == 3
    assert received.metrics.naks == 2
    assert received.metrics.duplicates == 1
    assert replies(transport)[-1] == Reply.ack(3)


def test_checksum_valid_but_wrong_content_fails_integrity():
    data = b"a" * 100
    bogus = Manifest("f", units=1, size=100, sha1="0" * 40).to_payload()
    transport = QueueTransport([encode(0, bogus), *data_units(data)])
    with pytest.raises(IntegrityError):
        Receiver(transport, linger_ms=0).run()


def test_unreadable_path_unit_is_a_protocol_error():
    transport = QueueTransport([encode(0, b"out/copy.bin")])
    with pytest.raises(ProtocolError):
        Receiver(transport).receive_unit()


def test_gives_up_after_max_idle():
    data = b"b" * 2000
    transport = QueueTransport([path_unit("f", data)])
    receiver = Receiver(transport, max_idle=3)
    with pytest.raises(TransferFailed) as exc_info:
        receiver.run()
    assert exc_info.value.unit == 1
    assert len(transport.timeouts) == 3


def test_units_after_completion_do_not_change_the_file():
    data = b"c" * 100
    stray = encode(2, b"STRAY-SECOND-TRANSFER")
    transport = QueueTransport([path_unit("f", data), *data_units(data), stray])
    received = Receiver(transport, linger_ms=50).run()

    assert received.data == data
    assert received.manifest.size == 100
    assert replies(transport) == [Reply.ack(0), Reply.ack(1)]
    assert received.metrics.ignored == 1


def test_second_transfer_during_linger_is_not_acknowledged():
    first = b"1" * 1000
    second = b"2" * 3000
    transport = QueueTransport(
        [
            path_unit("first.bin", first),
            *data_units(first),
            path_unit("second.bin", second),
            *data_units(second),
            data_units(first)[1],
        ]
    )
    received = Receiver(transport, linger_ms=50).run()

    assert received.path == "first.bin"
    assert received.data == first
    assert replies(transport) == [Reply.ack(0), Reply.ack(1), Reply.ack(2), Reply.ack(2)]
    assert received.metrics.ignored == 1 + 4
    assert received.metrics.duplicates == 1


def test_verify_without_path_unit_is_a_protocol_error():
    with pytest.raises(ProtocolError):
        Receiver(QueueTransport()).verify()
