"""Decoding of encrypted ``.dat`` image files into plain images."""

from __future__ import annotations

import os
import stat
import struct
from collections.abc import Iterator
from dataclasses import dataclass

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

__all__ = [
    "ImageFormat",
    "JPG",
    "PNG",
    "GIF",
    "TIFF",
    "BMP",
    "FORMATS",
    "V4_FORMAT1",
    "V4_FORMAT2",
    "V4_FORMATS",
    "JPG_TAIL",
    "dat_to_image",
    "dat_to_image_v4",
    "calculate_xor_key_v4",
    "scan_and_set_xor_key",
    "get_v4_xor_key",
    "set_v4_xor_key",
]


@dataclass(frozen=True)
class ImageFormat:
    """A file signature, with its extension or its AES key."""

    header: bytes
    ext: str = ""
    aes_key: bytes = b""


JPG = ImageFormat(b"\xff\xd8\xff", "jpg")
PNG = ImageFormat(b"\x89\x50\x4e\x47", "png")
GIF = ImageFormat(b"\x47\x49\x46\x38", "gif")
TIFF = ImageFormat(b"\x49\x49\x2a\x00", "tiff")
BMP = ImageFormat(b"\x42\x4d", "bmp")
FORMATS = (JPG, PNG, GIF, TIFF, BMP)

V4_FORMAT1 = ImageFormat(b"\x07\x08\x56\x31", aes_key=b"cfcd208495d565ef")
V4_FORMAT2 = ImageFormat(b"\x07\x08\x56\x32", aes_key=b"0000000000000000")
V4_FORMATS = (V4_FORMAT1, V4_FORMAT2)

JPG_TAIL = b"\xff\xd9"

_BLOCK = 16
_U32 = 1 << 32
_V4_HEADER_LEN = 15


class _XorKey:
    value = 0x37


_xor_key = _XorKey()


def get_v4_xor_key() -> int:
    """Return the XOR key currently used for v4 files."""
    return _xor_key.value


def set_v4_xor_key(key: int) -> None:
    """Set the XOR key used for v4 files."""
    if not 0 <= key <= 0xFF:
        raise ValueError(f"XOR key must be a byte, got {key}")
    _xor_key.value = key


def _xor(data: bytes, key: int) -> bytes:
    return data.translate(bytes(i ^ key for i in range(256)))


def dat_to_image(data: bytes) -> tuple[bytes, str]:
    """Decode a ``.dat`` file and return ``(image bytes, extension)``."""
    data = bytes(data)
    if len(data) < 4:
        raise ValueError(f"data length is too short: {len(data)}")

    if len(data) >= 6:
        for fmt in V4_FORMATS:
            if data[:4] == fmt.header:
                return dat_to_image_v4(data, fmt.aes_key)

    for fmt in FORMATS:
        key = data[0] ^ fmt.header[0]
        if all(byte ^ head == key for byte, head in zip(data, fmt.header)):
            return _xor(data, key), fmt.ext

    raise ValueError(f"unknown image type: {data[0]:x} {data[1]:x}")


def calculate_xor_key_v4(data: bytes) -> int:
    """Derive the XOR key from a tail that should end like a JPEG.

    Raises ValueError when the data is too short or the two tail bytes
    disagree about the key.
    """
    if len(data) < 2:
        raise ValueError("data too short to calculate XOR key")
    first, second = (byte ^ tail for byte, tail in zip(data[-2:], JPG_TAIL))
    if first != second:
        raise ValueError(f"inconsistent XOR key, using first byte: 0x{first:x}")
    return first


def _walk_files(path: str) -> Iterator[tuple[str, str]]:
    info = os.lstat(path)
    if not stat.S_ISDIR(info.st_mode):
        yield path, os.path.basename(path)
        return
    for name in sorted(os.listdir(path)):
        yield from _walk_files(os.path.join(path, name))


def _key_from_file(path: str) -> int | None:
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError:
        return None
    if len(data) < _V4_HEADER_LEN or data[:4] not in {f.header for f in V4_FORMATS}:
        return None
    (xor_len,) = struct.unpack_from("<I", data, 10)
    file_data = data[_V4_HEADER_LEN:]
    if xor_len == 0 or xor_len > len(file_data):
        return None
    try:
        return calculate_xor_key_v4(file_data[len(file_data) - xor_len:])
    except ValueError:
        return None


def scan_and_set_xor_key(dir_path: str) -> int:
    """Find the v4 XOR key from the first usable ``_t.dat`` thumbnail.

    The key found is stored for later decoding; the current key is returned.
    Raises OSError when the directory cannot be walked.
    """
    for path, name in _walk_files(dir_path):
        if not name.endswith("_t.dat"):
            continue
        key = _key_from_file(path)
        if key is not None:
            set_v4_xor_key(key)
            break
    return get_v4_xor_key()


def _decrypt_aes_ecb(data: bytes, key: bytes) -> bytes:
    if not data:
        return b""
    try:
        decryptor = Cipher(algorithms.AES(key), modes.ECB()).decryptor()
    except ValueError as exc:
        raise ValueError(f"AES decrypt error: {exc}") from exc
    if len(data) % _BLOCK:
        raise ValueError("AES decrypt error: data length is not a multiple of block size")
    decrypted = decryptor.update(data) + decryptor.finalize()
    padding = decrypted[-1]
    if 0 < padding <= _BLOCK and decrypted[-padding:] == bytes([padding]) * padding:
        return decrypted[:-padding]
    return decrypted


def dat_to_image_v4(data: bytes, aes_key: bytes) -> tuple[bytes, str]:
    """Decode a v4 ``.dat`` file, which mixes AES-ECB and XOR encryption.

    Layout: 6 bytes signature, little-endian u32 AES length, little-endian
    u32 XOR length, one unknown byte, then the payload.
    """
    data = bytes(data)
    if len(data) < _V4_HEADER_LEN:
        raise ValueError(f"data length is too short for WeChat v4 format: {len(data)}")

    aes_len, xor_len = struct.unpack_from("<II", data, 6)
    file_data = data[_V4_HEADER_LEN:]
    size = len(file_data)

    aes_len0 = min((aes_len // _BLOCK * _BLOCK + _BLOCK) % _U32, size)
    decrypted = _decrypt_aes_ecb(file_data[:aes_len0], aes_key)
    parts = [decrypted[:aes_len] if len(decrypted) > aes_len else decrypted]

    middle_end = (size - xor_len) % _U32
    if aes_len0 < middle_end:
        if middle_end > size:
            raise ValueError("XOR length exceeds data length")
        parts.append(file_data[aes_len0:middle_end])

    if xor_len > 0 and middle_end < size:
        parts.append(_xor(file_data[middle_end:], get_v4_xor_key()))

    result = b"".join(parts)
    for fmt in FORMATS:
        if result.startswith(fmt.header):
            return result, fmt.ext
    raise ValueError("unknown image type after decryption")