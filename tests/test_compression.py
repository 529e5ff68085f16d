import os

import lz4.block
import pytest
import zstandard

from chatlog.compression import lz4_decompress, zstd_decompress


def test_lz4_round_trip_random():
    payload = os.urandom(500)
    compressed = lz4.block.compress(payload, store_size=False)
    assert lz4_decompress(compressed) == payload


def test_lz4_round_trip_text():
    payload = b"The quick brown fox jumps over the lazy dog. " * 3
    compressed = lz4.block.compress(payload, store_size=False)
    assert lz4_decompress(compressed) == payload


def test_lz4_output_larger_than_buffer_fails():
    payload = b"a" * 10000
    compressed = lz4.block.compress(payload, store_size=False)
    assert len(compressed) * 4 < len(payload)
    with pytest.raises(ValueError):
        lz4_decompress(compressed)


def test_lz4_invalid_data():
    with pytest.raises(ValueError):
        lz4_decompress(b"\xff\xff\xff\xff")


def test_zstd_round_trip():
    payload = b"chat message body " * 200
    compressed = zstandard.ZstdCompressor().compress(payload)
    assert zstd_decompress(compressed) == payload


def test_zstd_multiple_frames():
    first, second = b"first frame", b"second frame"
    compressor = zstandard.ZstdCompressor()
    blob = compressor.compress(first) + compressor.compress(second)
    assert zstd_decompress(blob) == first + second


def test_zstd_invalid_data():
    with pytest.raises(ValueError):
        zstd_decompress(b"not zstd data at all")