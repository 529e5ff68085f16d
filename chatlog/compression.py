"""Decompression of LZ4 blocks and Zstandard frames."""

from __future__ import annotations

import io

import lz4.block
import zstandard

__all__ = ["lz4_decompress", "zstd_decompress"]

# Compressed message bodies are expected to expand by less than this factor.
_LZ4_EXPANSION = 4

_zstd = zstandard.ZstdDecompressor()


def lz4_decompress(data: bytes) -> bytes:
    """Decompress a raw LZ4 block whose output is at most four times its size."""
    try:
        return lz4.block.decompress(data, uncompressed_size=len(data) * _LZ4_EXPANSION)
    except lz4.block.LZ4BlockError as exc:
        raise ValueError(f"lz4 decompression failed: {exc}") from exc


def zstd_decompress(data: bytes) -> bytes:
    """Decompress all Zstandard frames in ``data``."""
    try:
        with _zstd.stream_reader(io.BytesIO(data), read_across_frames=True) as reader:
            return reader.read()
    except zstandard.ZstdError as exc:
        raise ValueError(f"zstd decompression failed: {exc}") from exc