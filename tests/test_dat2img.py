import struct

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from chatlog.dat2img import (
    JPG,
    PNG,
    V4_FORMAT1,
    V4_FORMAT2,
    calculate_xor_key_v4,
    dat_to_image,
    dat_to_image_v4,
    get_v4_xor_key,
    scan_and_set_xor_key,
    set_v4_xor_key,
)

JPEG_IMAGE = JPG.header + bytes(range(1, 200)) + b"\xff\xd9"
PNG_IMAGE = PNG.header + b"\x0d\x0a\x1a\x0a" + bytes(range(50))


@pytest.fixture(autouse=True)
def restore_key():
    saved = get_v4_xor_key()
    yield
    set_v4_xor_key(saved)


def make_v4(image, aes_len, xor_len, key, fmt=V4_FORMAT1):
    padded_len = aes_len // 16 * 16 + 16
    pad = padded_len - aes_len
    plain = image[:aes_len] + bytes([pad]) * pad
    encryptor = Cipher(algorithms.AES(fmt.aes_key), modes.ECB()).encryptor()
    encrypted = encryptor.update(plain) + encryptor.finalize()
    middle = image[aes_len:len(image) - xor_len]
    tail = bytes(b ^ key for b in image[len(image) - xor_len:])
    header = fmt.header + b"\x00\x00" + struct.pack("<II", aes_len, xor_len) + b"\x01"
    return header + encrypted + middle + tail


def test_old_format_jpg_round_trip():
    encoded = bytes(b ^ 0x5A for b in JPEG_IMAGE)
    assert dat_to_image(encoded) == (JPEG_IMAGE, "jpg")


def test_old_format_png_round_trip():
    encoded = bytes(b ^ 0x13 for b in PNG_IMAGE)
    assert dat_to_image(encoded) == (PNG_IMAGE, "png")


def test_old_format_zero_key_is_identity():
    assert dat_to_image(JPEG_IMAGE) == (JPEG_IMAGE, "jpg")


def test_too_short():
    with pytest.raises(ValueError):
        dat_to_image(b"\xff\xd8")


def test_unknown_type():
    with pytest.raises(ValueError):
        dat_to_image(b"\x01\x02\x03\x04\x05")


def test_calculate_xor_key():
    assert calculate_xor_key_v4(b"\x00\x00" + bytes([0xFF ^ 0x37, 0xD9 ^ 0x37])) == 0x37


def test_calculate_xor_key_inconsistent():
    with pytest.raises(ValueError):
        calculate_xor_key_v4(b"\x00\x01")


def test_calculate_xor_key_short():
    with pytest.raises(ValueError):
        calculate_xor_key_v4(b"\xff")


@pytest.mark.parametrize("aes_len, xor_len", [(16, 10), (20, 30), (5, 1)])
def test_v4_round_trip(aes_len, xor_len):
    set_v4_xor_key(0x37)
    blob = make_v4(JPEG_IMAGE, aes_len, xor_len, 0x37)
    assert dat_to_image_v4(blob, V4_FORMAT1.aes_key) == (JPEG_IMAGE, "jpg")


def test_v4_dispatch_from_dat_to_image():
    set_v4_xor_key(0x42)
    blob = make_v4(PNG_IMAGE, 16, 8, 0x42, fmt=V4_FORMAT2)
    assert dat_to_image(blob) == (PNG_IMAGE, "png")


def test_v4_wrong_key_gives_unknown_type():
    set_v4_xor_key(0x37)
    blob = make_v4(JPEG_IMAGE, 16, 10, 0x37)
    with pytest.raises(ValueError):
        dat_to_image_v4(blob, V4_FORMAT2.aes_key)


def test_v4_too_short():
    with pytest.raises(ValueError):
        dat_to_image_v4(V4_FORMAT1.header + b"\x00" * 5, V4_FORMAT1.aes_key)


def test_set_key_rejects_non_byte():
    with pytest.raises(ValueError):
        set_v4_xor_key(256)


def test_scan_sets_key(tmp_path):
    set_v4_xor_key(0x37)
    sub = tmp_path / "2024"
    sub.mkdir()
    (sub / "ignored.dat").write_bytes(make_v4(JPEG_IMAGE, 16, 10, 0x55))
    (sub / "img_t.dat").write_bytes(make_v4(JPEG_IMAGE, 16, 10, 0x21))
    assert scan_and_set_xor_key(str(tmp_path)) == 0x21
    assert get_v4_xor_key() == 0x21


def test_scan_without_candidates_keeps_key(tmp_path):
    set_v4_xor_key(0x37)
    (tmp_path / "other_t.dat").write_bytes(b"\x00" * 20)
    assert scan_and_set_xor_key(str(tmp_path)) == 0x37


def test_scan_missing_directory(tmp_path):
    with pytest.raises(OSError):
        scan_and_set_xor_key(str(tmp_path / "missing"))