import stat
import struct
import subprocess
from pathlib import Path
from unittest import mock

import pytest

from postkit.grok import (
    TiffError,
    compress_file_subprocess,
    find_grk_compress,
    grok_lib_path,
    load_tiff,
)


def _entry(order, tag, field_type, value):
    if field_type == 3:
        packed = struct.pack(order + "HH", value, 0)
    else:
        packed = struct.pack(order + "I", value)
    return struct.pack(order + "HHI", tag, field_type, 1) + packed


def _make_tiff(width, height, bps, spp, pixels, order="<", compression=1):
    magic = b"II*\x00" if order == "<" else b"MM\x00*"
    data_off = 8
    pad = b"\x00" * (len(pixels) % 2)
    ifd_off = data_off + len(pixels) + len(pad)
    entries = [
        _entry(order, 256, 4, width),
        _entry(order, 257, 4, height),
        _entry(order, 258, 3, bps),
        _entry(order, 259, 3, compression),
        _entry(order, 273, 4, data_off),
        _entry(order, 277, 3, spp),
        _entry(order, 279, 4, len(pixels)),
    ]
    header = magic + struct.pack(order + "I", ifd_off)
    ifd = struct.pack(order + "H", len(entries)) + b"".join(entries)
    ifd += struct.pack(order + "I", 0)
    return header + pixels + pad + ifd


def _pack12(values):
    out = bytearray()
    for a, b in zip(values[0::2], values[1::2]):
        out += bytes([a >> 4, ((a & 0xF) << 4) | (b >> 4), b & 0xFF])
    return bytes(out)


def test_load_8bit(tmp_path):
    pixels = bytes([1, 2, 3, 4, 5, 6])
    path = tmp_path / "f.tif"
    path.write_bytes(_make_tiff(2, 1, 8, 3, pixels))
    frame = load_tiff(path)
    assert frame.width == 2
    assert frame.height == 1
    assert frame.precision == 8
    assert frame.components == ([1, 4], [2, 5], [3, 6])
    assert frame.path == path


def test_load_8bit_skips_alpha(tmp_path):
    pixels = bytes([10, 20, 30, 255, 40, 50, 60, 255])
    path = tmp_path / "rgba.tif"
    path.write_bytes(_make_tiff(2, 1, 8, 4, pixels))
    frame = load_tiff(path)
    assert frame.components == ([10, 40], [20, 50], [30, 60])


@pytest.mark.parametrize("order", ["<", ">"])
def test_load_16bit_both_byte_orders(tmp_path, order):
    values = [1000, 2000, 3000, 40000, 50000, 65535]
    pixels = struct.pack(f"{order}6H", *values)
    path = tmp_path / "f16.tif"
    path.write_bytes(_make_tiff(1, 2, 16, 3, pixels, order=order))
    frame = load_tiff(path)
    assert frame.precision == 16
    assert frame.components == ([1000, 40000], [2000, 50000], [3000, 65535])


def test_missing_file_raises(tmp_path):
    with pytest.raises(TiffError, match="Cannot open"):
        load_tiff(tmp_path / "absent.tif")


def test_not_a_tiff(tmp_path):
    path = tmp_path / "bad.tif"
    path.write_bytes(b"hello world, not a tiff")
    with pytest.raises(TiffError, match="TIFF decode error"):
        load_tiff(path)


def test_too_few_samples_per_pixel(tmp_path):
    path = tmp_path / "grey.tif"
    path.write_bytes(_make_tiff(2, 1, 8, 1, bytes([1, 2])))
    with pytest.raises(TiffError, match="samples/pixel"):
        load_tiff(path)


def test_unsupported_bit_depth(tmp_path):
    path = tmp_path / "f10.tif"
    path.write_bytes(_make_tiff(1, 1, 10, 3, bytes(4)))
    with pytest.raises(TiffError, match="Unsupported bits/sample: 10"):
        load_tiff(path)


def test_compressed_8bit_rejected(tmp_path):
    path = tmp_path / "lzw.tif"
    path.write_bytes(_make_tiff(1, 1, 8, 3, bytes(3), compression=5))
    with pytest.raises(TiffError, match="compression"):
        load_tiff(path)


def test_truncated_pixel_data(tmp_path):
    path = tmp_path / "short.tif"
    path.write_bytes(_make_tiff(4, 4, 8, 3, bytes(6)))
    with pytest.raises(TiffError, match="expected"):
        load_tiff(path)


def test_find_grk_compress_in_home(tmp_path, monkeypatch):
    binary = tmp_path / "bin" / "grok" / "bin" / "grk_compress"
    binary.parent.mkdir(parents=True)
    binary.write_text("")
    monkeypatch.setenv("HOME", str(tmp_path))
    assert find_grk_compress() == binary


def test_find_grk_compress_not_found(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    with mock.patch("postkit.grok.shutil.which", return_value=None):
        assert find_grk_compress() is None


def test_find_grk_compress_on_path(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    with mock.patch("postkit.grok.shutil.which", return_value="/opt/grk/grk_compress"):
        assert find_grk_compress() == Path("/opt/grk/grk_compress")


def test_grok_lib_path(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert grok_lib_path() == ""
    lib = tmp_path / "bin" / "grok" / "lib64"
    lib.mkdir(parents=True)
    assert grok_lib_path() == f"{tmp_path}/bin/grok/lib64"


def _script(tmp_path, body):
    script = tmp_path / "fake_grk"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return script


def test_compress_file_subprocess_arguments(tmp_path):
    record = tmp_path / "record.txt"
    script = _script(
        tmp_path, f'echo "$@" > "{record}"\necho "$LD_LIBRARY_PATH" >> "{record}"\n'
    )
    result = compress_file_subprocess(
        script, "/libdir", "in.tif", "out.j2c", 10.0, 6, 32, "CPRL"
    )
    assert result is None
    lines = record.read_text().splitlines()
    assert lines[0] == "-i in.tif -o out.j2c -r 10 --xyz -n 6 -b 32,32 -p CPRL -H 1"
    assert lines[1] == "/libdir"


def test_compress_file_subprocess_failure(tmp_path):
    script = _script(tmp_path, "exit 3\n")
    with pytest.raises(subprocess.CalledProcessError) as info:
        compress_file_subprocess(script, "", "in.tif", "out.j2c", 10.0, 6, 32, "CPRL")
    assert info.value.returncode == 3


def test_compress_file_subprocess_missing_binary(tmp_path):
    with pytest.raises(OSError):
        compress_file_subprocess(
            tmp_path / "nope", "", "in.tif", "out.j2c", 10.0, 6, 32, "CPRL"
        )