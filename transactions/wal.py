"""
Catalog Store Commit Log
========================
Append-only binary log of committed write sets.

One record per commit, written and fsynced before the commit is
acknowledged. Replaying the log from the start rebuilds the store.
File starts with 4 zero bytes (format padding).

A damaged record at the very end of the file is a torn write from a crash
and is truncated on open. A damaged record followed by more data is
corruption and fails the open.
"""

import logging
import os
import struct
import zlib
from dataclasses import dataclass
from enum import IntEnum
from typing import BinaryIO, Iterator, List, Optional, Tuple

from storage.errors import CommitLogCorruptionError

logger = logging.getLogger(__name__)

# ─── Constants ──────────────────────────────────────────────────────────────

LOG_FILE_NAME = "commit.log"
LOG_PADDING = 4       # First 4 bytes of file are zero


class MutationType(IntEnum):
    SET         = 0x01
    CLEAR       = 0x02
    CLEAR_RANGE = 0x03


# (type, key_or_begin, value_or_end)
Mutation = Tuple[MutationType, bytes, bytes]

# Record header: total_len(I) version(Q) mutation_count(I)
_HDR_FMT = ">IQI"
_HDR_SIZE = struct.calcsize(_HDR_FMT)   # 16
_CRC_SIZE = 4
_MIN_RECORD = _HDR_SIZE + _CRC_SIZE     # 20


@dataclass
class CommitRecord:
    """Parsed commit record."""
    offset: int
    version: int
    mutations: List[Mutation]
    total_len: int


class _TornRecord(Exception):
    pass


# ─── CommitLog ──────────────────────────────────────────────────────────────

class CommitLog:
    """
    Manages the commit log file.

    Guarantees:
      - CRC32 on every record
      - append_commit() returns only after fsync
      - versions strictly increase through the file
    """

    def __init__(self, data_dir: str):
        os.makedirs(data_dir, exist_ok=True)
        self._log_path = os.path.join(data_dir, LOG_FILE_NAME)

        if not os.path.exists(self._log_path):
            with open(self._log_path, "wb") as f:
                f.write(struct.pack(">I", 0))
                f.flush()
                os.fsync(f.fileno())

        self._file: Optional[BinaryIO] = open(self._log_path, "r+b")

        size = self._file.seek(0, os.SEEK_END)
        if size < LOG_PADDING:
            self._file.truncate(0)
            self._file.seek(0)
            self._file.write(struct.pack(">I", 0))
            self._file.flush()
            os.fsync(self._file.fileno())
            size = LOG_PADDING

        self._end = size

    @property
    def path(self) -> str:
        return self._log_path

    def close(self) -> None:
        if self._file:
            self._file.flush()
            os.fsync(self._file.fileno())
            self._file.close()
            self._file = None

    # ─── Write ───────────────────────────────────────────────────────────

    def append_commit(self, version: int, mutations: List[Mutation]) -> int:
        """Append one commit record and fsync it. Returns its file offset."""
        payload = bytearray()
        for mtype, first, second in mutations:
            payload += struct.pack(">BI", mtype, len(first)) + first
            payload += struct.pack(">I", len(second)) + second

        total_len = _HDR_SIZE + len(payload) + _CRC_SIZE
        hdr = struct.pack(_HDR_FMT, total_len, version, len(mutations))
        crc = zlib.crc32(payload, zlib.crc32(hdr)) & 0xFFFFFFFF

        offset = self._end
        self._file.seek(offset)
        self._file.write(hdr)
        self._file.write(payload)
        self._file.write(struct.pack(">I", crc))
        self._file.flush()
        os.fsync(self._file.fileno())

        self._end = offset + total_len
        return offset

    # ─── Read ────────────────────────────────────────────────────────────

    def recover(self) -> List[CommitRecord]:
        """
        Read every intact record. A torn tail is truncated away so later
        appends start from the last acknowledged commit.
        """
        records: List[CommitRecord] = []
        file_end = self._file.seek(0, os.SEEK_END)
        pos = LOG_PADDING
        last_version = 0

        while pos < file_end:
            try:
                record = self._read_record(pos, file_end)
            except _TornRecord as e:
                logger.warning("Truncating torn commit log tail at offset %d: %s", pos, e)
                self._file.truncate(pos)
                self._file.flush()
                os.fsync(self._file.fileno())
                file_end = pos
                break
            if record.version <= last_version:
                raise CommitLogCorruptionError(
                    f"Commit version {record.version} at offset {pos} "
                    f"does not follow version {last_version}")
            last_version = record.version
            records.append(record)
            pos += record.total_len

        self._end = file_end
        return records

    def scan(self) -> Iterator[CommitRecord]:
        """Yield intact records without repairing the file."""
        file_end = self._file.seek(0, os.SEEK_END)
        pos = LOG_PADDING
        while pos < file_end:
            try:
                record = self._read_record(pos, file_end)
            except _TornRecord:
                return
            yield record
            pos += record.total_len

    def _read_record(self, pos: int, file_end: int) -> CommitRecord:
        self._file.seek(pos)
        hdr = self._file.read(_HDR_SIZE)
        if len(hdr) < _HDR_SIZE:
            raise _TornRecord("short header")

        total_len, version, count = struct.unpack(_HDR_FMT, hdr)
        if total_len < _MIN_RECORD:
            self._damaged(pos, total_len, file_end, f"record too small ({total_len})")
        if pos + total_len > file_end:
            raise _TornRecord("record extends past end of file")

        rest = self._file.read(total_len - _HDR_SIZE)
        payload, stored_crc = rest[:-_CRC_SIZE], struct.unpack(">I", rest[-_CRC_SIZE:])[0]
        if (zlib.crc32(payload, zlib.crc32(hdr)) & 0xFFFFFFFF) != stored_crc:
            self._damaged(pos, total_len, file_end, "CRC mismatch")

        try:
            mutations = self._parse_mutations(payload, count)
        except (struct.error, ValueError) as e:
            raise CommitLogCorruptionError(f"Malformed commit payload at offset {pos}: {e}")
        return CommitRecord(offset=pos, version=version, mutations=mutations, total_len=total_len)

    @staticmethod
    def _damaged(pos: int, total_len: int, file_end: int, reason: str) -> None:
        # Only the final record can be a torn write.
        if pos + max(total_len, _MIN_RECORD) >= file_end:
            raise _TornRecord(reason)
        raise CommitLogCorruptionError(f"{reason} at commit log offset {pos}")

    @staticmethod
    def _parse_mutations(payload: bytes, count: int) -> List[Mutation]:
        mutations: List[Mutation] = []
        off = 0
        for _ in range(count):
            mtype, first_len = struct.unpack_from(">BI", payload, off); off += 5
            first = payload[off:off + first_len]; off += first_len
            second_len = struct.unpack_from(">I", payload, off)[0]; off += 4
            second = payload[off:off + second_len]; off += second_len
            mutations.append((MutationType(mtype), bytes(first), bytes(second)))
        if off != len(payload):
            raise ValueError(f"{len(payload) - off} trailing bytes")
        return mutations
