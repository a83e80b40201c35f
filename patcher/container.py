"""
Patch container format: a header followed by length-prefixed chunk records.

Layout (little endian):
    header  <4sHQIQQ  magic, format version, chunk size, chunk count, old size, new size
    record  <IBQ      chunk index, chunk kind, payload length; followed by the payload

Records are stored in index order 0..chunk_count-1. DIFFED payloads are
sub-patches produced by the delta tool, INSERTED_WHOLE payloads are raw bytes
of the new file, DELETED_WHOLE payloads are empty.
"""

import logging
import os
import struct
from typing import Iterable, List

from common.constants import TEMP_EXTENSION
from common.exceptions import CorruptContainerError
from common.types import ChunkKind, ChunkRecord, ContainerHeader, PatchContainer, PayloadRef
from patcher.chunk_storage import copy_range, delete_file

logger = logging.getLogger(__name__)

MAGIC = b"XDCK"
FORMAT_VERSION = 1

HEADER = struct.Struct("<4sHQIQQ")
RECORD_HEADER = struct.Struct("<IBQ")


def is_container(path: str) -> bool:
    """
    Check whether a file starts with the container magic.
    """
    with open(path, 'rb') as f:
        return f.read(len(MAGIC)) == MAGIC


class PatchContainerWriter:
    """
    Streams ordered chunk records into a single container file.
    """

    def write(
        self,
        header: ContainerHeader,
        records: Iterable[ChunkRecord],
        destination: str
    ) -> int:
        """
        Write a container to destination.

        Records may arrive in any order; they are written by ascending index.
        Payloads are copied piecewise from their PayloadRef. The file is built
        under a temporary name and moved into place only when complete.

        Args:
            header: Chunking parameters of the patch
            records: One record per chunk index
            destination: Final container path

        Returns:
            Size of the written container in bytes

        Raises:
            ValueError: If the records do not cover exactly 0..chunk_count-1
        """
        ordered = sorted(records, key=lambda record: record.index)
        self._check_records(header, ordered)

        temp_path = destination + TEMP_EXTENSION
        try:
            with open(temp_path, 'wb') as out:
                out.write(HEADER.pack(
                    MAGIC,
                    FORMAT_VERSION,
                    header.chunk_size,
                    header.chunk_count,
                    header.old_size,
                    header.new_size,
                ))
                for record in ordered:
                    out.write(RECORD_HEADER.pack(record.index, int(record.kind), record.payload.length))
                    if record.payload.length:
                        copy_range(record.payload.path, record.payload.offset, record.payload.length, out)
            os.replace(temp_path, destination)
        finally:
            delete_file(temp_path)

        size = os.stat(destination).st_size
        logger.debug(f"Wrote container {destination} [{header.chunk_count} records, {size} bytes]")
        return size

    @staticmethod
    def _check_records(header: ContainerHeader, ordered: List[ChunkRecord]) -> None:
        if len(ordered) != header.chunk_count:
            raise ValueError(f"Header declares {header.chunk_count} chunks but {len(ordered)} records were given")
        for expected, record in enumerate(ordered):
            if record.index != expected:
                raise ValueError(f"Record index {record.index} found where {expected} was expected")
            if record.kind == ChunkKind.DELETED_WHOLE and record.payload.length:
                raise ValueError(f"Deleted chunk {record.index} must not carry a payload")
            if record.payload.length and record.payload.path is None:
                raise ValueError(f"Record {record.index} has a payload length but no source file")


class PatchContainerReader:
    """
    Parses a container into lazy records referencing payload ranges of the file.
    """

    def read(self, source: str) -> PatchContainer:
        """
        Parse the header and record table of a container.

        Args:
            source: Container path

        Returns:
            PatchContainer whose record payloads point into source

        Raises:
            CorruptContainerError: If the container is malformed
        """
        total_size = os.stat(source).st_size

        with open(source, 'rb') as f:
            raw_header = f.read(HEADER.size)
            if len(raw_header) < HEADER.size:
                raise CorruptContainerError(
                    f"Truncated header in {source}: {len(raw_header)} of {HEADER.size} bytes"
                )

            magic, version, chunk_size, chunk_count, old_size, new_size = HEADER.unpack(raw_header)
            if magic != MAGIC:
                raise CorruptContainerError(f"Bad magic in {source}: {magic!r}")
            if version != FORMAT_VERSION:
                raise CorruptContainerError(f"Unsupported container version {version} in {source}")
            if chunk_size <= 0 and chunk_count > 0:
                raise CorruptContainerError(f"Invalid chunk size {chunk_size} in {source}")

            header = ContainerHeader(
                chunk_size=chunk_size,
                chunk_count=chunk_count,
                old_size=old_size,
                new_size=new_size,
            )

            records = []
            position = HEADER.size
            for expected_index in range(chunk_count):
                raw_record = f.read(RECORD_HEADER.size)
                if len(raw_record) < RECORD_HEADER.size:
                    raise CorruptContainerError(
                        f"Chunk count mismatch in {source}: header declares {chunk_count}, "
                        f"found {expected_index}"
                    )
                index, kind_value, length = RECORD_HEADER.unpack(raw_record)
                position += RECORD_HEADER.size

                if index != expected_index:
                    raise CorruptContainerError(
                        f"Record out of order in {source}: index {index} at position {expected_index}"
                    )
                try:
                    kind = ChunkKind(kind_value)
                except ValueError:
                    raise CorruptContainerError(f"Unknown chunk kind {kind_value} for record {index} in {source}")
                if kind == ChunkKind.DELETED_WHOLE and length:
                    raise CorruptContainerError(f"Deleted record {index} carries {length} payload bytes in {source}")
                if position + length > total_size:
                    raise CorruptContainerError(
                        f"Payload of record {index} runs past the end of {source}"
                    )

                payload = PayloadRef(path=source, offset=position, length=length) if length else PayloadRef.empty()
                records.append(ChunkRecord(index=index, kind=kind, payload=payload))

                position += length
                f.seek(position)

            if position != total_size:
                raise CorruptContainerError(
                    f"{total_size - position} unexpected trailing bytes after record {chunk_count - 1} in {source}"
                )

        logger.debug(f"Read container {source} [{chunk_count} records]")
        return PatchContainer(header=header, records=records)
