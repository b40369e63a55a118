import gzip
import os

import pytest

from firebird_export.config import CompressionType
from firebird_export.errors import OutputError
from firebird_export.sink import OutputSink


def test_plain_output(tmp_path):
    path = tmp_path / "out.csv"

    sink = OutputSink(str(path), CompressionType.none, buffer_size=16)
    with sink:
        sink.write(b"a,b\n")
        sink.write(b"1,2\n" * 10)

    assert path.read_bytes() == b"a,b\n" + b"1,2\n" * 10
    assert sink.size_bytes() == os.path.getsize(path) == 44


def test_gzip_output_is_single_stream(tmp_path):
    path = tmp_path / "out.csv.gz"
    payload = b"".join(f"{i},row {i}\n".encode() for i in range(5000))

    sink = OutputSink(str(path), CompressionType.gzip, buffer_size=1024)
    with sink:
        sink.write(payload)

    assert gzip.decompress(path.read_bytes()) == payload
    assert sink.size_bytes() == os.path.getsize(path)
    assert sink.size_bytes() < len(payload)


def test_gzip_output_is_reproducible(tmp_path):
    outputs = []
    for name in ("a.gz", "b.gz"):
        path = tmp_path / name
        with OutputSink(str(path), CompressionType.gzip) as sink:
            sink.write(b"same content\n")
        outputs.append(path.read_bytes())

    assert outputs[0] == outputs[1]


def test_size_before_close_is_an_error(tmp_path):
    sink = OutputSink(str(tmp_path / "out.csv"))
    with sink:
        with pytest.raises(OutputError):
            sink.size_bytes()


def test_missing_directory(tmp_path):
    path = tmp_path / "missing" / "out.csv"

    with pytest.raises(OutputError) as exc:
        with OutputSink(str(path)):
            pass

    assert exc.value.path == str(path)
    assert str(path) in str(exc.value)
    assert exc.value.phase == "write"


def test_flushed_and_closed_on_error(tmp_path):
    path = tmp_path / "out.csv.gz"

    with pytest.raises(RuntimeError, match="boom"):
        with OutputSink(str(path), CompressionType.gzip) as sink:
            sink.write(b"partial,row\n")
            raise RuntimeError("boom")

    # partial output stays on disk as a complete gzip stream
    assert gzip.decompress(path.read_bytes()) == b"partial,row\n"


def test_write_after_close(tmp_path):
    sink = OutputSink(str(tmp_path / "out.csv"))
    with sink:
        pass

    with pytest.raises(OutputError):
        sink.write(b"late\n")
