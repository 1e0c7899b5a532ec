from __future__ import annotations

import argparse
import dataclasses
import json
import logging

from .bench import run_benchmark
from .constants import DEFAULT_LINGER_MS, DEFAULT_PACKET_SIZE, DEFAULT_TIMEOUT_MS
from .errors import SwftError
from .files import read_all_bytes, write_all_bytes
from .net import Impairment, UdpEndpoint
from .policy import RetryPolicy
from .receiver import Receiver
from .sender import StopAndWaitSender

log = logging.getLogger("swft")


def _impairment(args: argparse.Namespace) -> Impairment:
    return Impairment(args.loss_rate, args.corrupt_rate, args.delay_ms)


def _emit(payload: dict, as_json: bool) -> None:
    print(json.dumps(payload, indent=2) if as_json else payload)


def cmd_recv(args: argparse.Namespace) -> int:
    with UdpEndpoint.listening(args.listen_host, args.listen_port, impairment=_impairment(args)) as udp:
        receiver = Receiver(
            udp,
            packet_size=args.packet_size,
            timeout_ms=args.timeout_ms,
            linger_ms=args.linger_ms,
            max_idle=args.max_idle,
        )
        received = receiver.run()

    target = write_all_bytes(args.out_dir, received.path, received.data)
    log.info("wrote %d bytes to %s", len(received.data), target)
    _emit({"role": "receiver", "path": target, **received.metrics.summary()}, args.json)
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    data = read_all_bytes(args.source)
    policy = RetryPolicy(
        timeout_ms=args.timeout_ms,
        max_attempts=args.max_attempts,
        backoff=args.backoff,
    )
    with UdpEndpoint.sending(impairment=_impairment(args)) as udp:
        sender = StopAndWaitSender(udp, (args.host, args.port), packet_size=args.packet_size, policy=policy)
        result = sender.run(args.dest, data)

    _emit({"role": "sender", "ok": result.ok, **result.metrics.summary()}, args.json)
    return 0 if result.ok else 1


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(
        size_bytes=args.size_bytes,
        loss_rate=args.loss_rate,
        corrupt_rate=args.corrupt_rate,
        delay_ms=args.delay_ms,
        packet_size=args.packet_size,
        timeout_ms=args.timeout_ms,
        max_attempts=args.max_attempts,
        seed=args.seed,
    )
    _emit({"role": "bench", **dataclasses.asdict(r)}, args.json)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="swft", description="Stop-and-wait file transfer over UDP.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--packet-size", type=int, default=DEFAULT_PACKET_SIZE)
        x.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS)
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate packet loss")
        x.add_argument("--corrupt-rate", type=float, default=0.0, help="simulate single-bit corruption")
        x.add_argument("--delay-ms", type=int, default=0)
        x.add_argument("--json", action="store_true")

    send = sub.add_parser("send", help="send a file to a receiver")
    add_common(send)
    send.add_argument("host")
    send.add_argument("port", type=int)
    send.add_argument("source", help="file to read")
    send.add_argument("dest", help="path the receiver writes to")
    send.add_argument("--max-attempts", type=int, default=None, help="give up on a unit after this many sends")
    send.add_argument("--backoff", type=float, default=1.0, help="timeout multiplier after each timeout")
    send.set_defaults(func=cmd_send)

    recv = sub.add_parser("recv", help="receive one file and write it to disk")
    add_common(recv)
    recv.add_argument("--listen-host", default="0.0.0.0")
    recv.add_argument("--listen-port", type=int, required=True)
    recv.add_argument("--out-dir", default=".")
    recv.add_argument("--linger-ms", type=int, default=DEFAULT_LINGER_MS)
    recv.add_argument("--max-idle", type=int, default=None, help="give up after this many silent timeouts")
    recv.set_defaults(func=cmd_recv)

    bench = sub.add_parser("bench", help="loopback transfer of random bytes")
    add_common(bench)
    bench.add_argument("--size-bytes", type=int, default=1_000_000)
    bench.add_argument("--max-attempts", type=int, default=50)
    bench.add_argument("--seed", type=int, default=None)
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        return int(args.func(args))
    except (SwftError, OSError, ValueError) as exc:
        log.error("%s: %s", args.cmd, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
