from __future__ import annotations

import struct

# checksum, seq, payload_len
HEADER_STRUCT = struct.Struct("!QII")
HEADER_SIZE = HEADER_STRUCT.size  # 16
COVERED_STRUCT = struct.Struct("!II")  # seq, payload_len as fed to the checksum

# crc32, verdict, unit
REPLY_STRUCT = struct.Struct("!IBI")
REPLY_SIZE = REPLY_STRUCT.size

NAK = 0x00
ACK = 0x01

PATH_UNIT = 0
MAX_SEQ = 0xFFFFFFFF

DEFAULT_PACKET_SIZE = 1000
DEFAULT_CHUNK_CAPACITY = DEFAULT_PACKET_SIZE - HEADER_SIZE  # 984
DEFAULT_TIMEOUT_MS = 250
DEFAULT_MAX_TIMEOUT_MS = 4000
DEFAULT_LINGER_MS = 1000
