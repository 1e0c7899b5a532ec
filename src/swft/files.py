from __future__ import annotations

import os


def read_all_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def resolve_destination(root: str, dest: str) -> str:
    """Place ``dest`` under ``root``; announced paths may not climb out of it."""
    base = os.path.realpath(root)
    target = os.path.realpath(os.path.join(base, dest.lstrip("/\\")))
    if os.path.commonpath([base, target]) != base or target == base:
        raise ValueError(f"destination escapes {root!r}: {dest!r}")
    return target


def write_all_bytes(root: str, dest: str, data: bytes) -> str:
    target = resolve_destination(root, dest)
    os.makedirs(os.path.dirname(target), exist_ok=True)
    with open(target, "wb") as out:
        out.write(data)
    return target
