"""Test PcapReader class functionality."""

import io

import pytest

from pcapdiag.core.reader import (
    PcapReader,
    Frame,
    LinkLayerType,
    get_link_layer_type,
    DLT_EN10MB,
    DLT_LINUX_SLL,
    DLT_RAW,
    DLT_NULL,
    DLT_LOOP,
)
from pcapdiag.errors import (
    CaptureOpenError,
    CaptureReadError,
    InvalidCaptureError,
    UnsupportedCaptureFormatError,
)
from pcapgen import pcap_bytes, pcap_header, pcap_record, tcp_frame, write_pcap


class TrickleStream(io.RawIOBase):
    """Stream that returns at most ``chunk`` bytes per read."""

    def __init__(self, data, chunk=3):
        self._data = data
        self._pos = 0
        self._chunk = chunk

    def readable(self):
        return True

    def read(self, n=-1):
        if n is None or n < 0:
            n = len(self._data)
        n = min(n, self._chunk)
        out = self._data[self._pos:self._pos + n]
        self._pos += len(out)
        return out


class FailingStream(io.RawIOBase):
    """Stream that serves a header and then fails."""

    def __init__(self, data):
        self._data = data
        self._served = False

    def readable(self):
        return True

    def read(self, n=-1):
        if self._served:
            raise OSError("device went away")
        self._served = True
        return self._data


def test_get_link_layer_type():
    """Test link layer type mapping."""
    assert get_link_layer_type(DLT_EN10MB) == LinkLayerType.ETHERNET
    assert get_link_layer_type(DLT_LINUX_SLL) == LinkLayerType.LINUX_SLL
    assert get_link_layer_type(DLT_RAW) == LinkLayerType.RAW_IP
    assert get_link_layer_type(12) == LinkLayerType.RAW_IP
    assert get_link_layer_type(DLT_NULL) == LinkLayerType.NULL
    assert get_link_layer_type(DLT_LOOP) == LinkLayerType.NULL
    assert get_link_layer_type(999) == LinkLayerType.UNKNOWN


def test_pcap_reader_init():
    """Test PcapReader initialization."""
    reader = PcapReader("test.pcap")
    assert reader.pcap_path.name == "test.pcap"
    assert reader._stream is None
    assert reader._link_layer_type is None
    with pytest.raises(RuntimeError):
        reader.link_layer_type


def test_reads_frames_in_order(tmp_path):
    frames = [(1.5, tcp_frame(seq=1)), (2.25, tcp_frame(seq=2)), (3.0, tcp_frame(seq=3))]
    path = write_pcap(tmp_path / 'a.pcap', frames)

    with PcapReader(path) as reader:
        assert reader.link_layer_type == DLT_EN10MB
        assert reader.link_layer_name == LinkLayerType.ETHERNET
        assert reader.version == (2, 4)
        assert reader.snaplen == 65535
        result = list(reader)

    assert len(result) == 3
    assert all(isinstance(f, Frame) for f in result)
    assert [f.timestamp for f in result] == pytest.approx([1.5, 2.25, 3.0])
    assert [f.data for f in result] == [data for _, data in frames]
    assert result[0].wirelen == len(frames[0][1])


@pytest.mark.parametrize("byteorder", ['<', '>'])
@pytest.mark.parametrize("nano", [False, True])
def test_all_legacy_magics(byteorder, nano):
    data = tcp_frame()
    raw = pcap_bytes([(10.123456, data)], byteorder=byteorder, nano=nano)

    with PcapReader(io.BytesIO(raw)) as reader:
        assert reader.nanosecond_resolution is nano
        frames = list(reader)

    assert len(frames) == 1
    assert frames[0].data == data
    assert frames[0].timestamp == pytest.approx(10.123456, abs=1e-6)


def test_short_reads_are_retried():
    frames = [(float(i), tcp_frame(seq=i)) for i in range(5)]
    raw = pcap_bytes(frames)

    with PcapReader(TrickleStream(raw, chunk=7), buffer_size=7) as reader:
        result = list(reader)

    assert [f.data for f in result] == [data for _, data in frames]


def test_header_only_capture_is_empty():
    with PcapReader(io.BytesIO(pcap_header())) as reader:
        assert list(reader) == []


def test_truncated_trailing_record_ends_cleanly(caplog):
    good = pcap_record(1.0, tcp_frame())
    partial = pcap_record(2.0, tcp_frame())[:-10]
    raw = pcap_header() + good + partial

    with PcapReader(io.BytesIO(raw)) as reader:
        with caplog.at_level('WARNING', logger='pcapdiag.core.reader'):
            result = list(reader)

    assert len(result) == 1
    assert 'truncated record' in caplog.text


def test_truncated_record_header_ends_cleanly():
    raw = pcap_header() + pcap_record(1.0, tcp_frame()) + b'\x00' * 7
    with PcapReader(io.BytesIO(raw)) as reader:
        assert len(list(reader)) == 1


def test_unknown_magic():
    with pytest.raises(InvalidCaptureError, match="magic"):
        PcapReader(io.BytesIO(b'\xde\xad\xbe\xef' + b'\x00' * 20)).open()


def test_pcapng_rejected():
    shb = b'\x0a\x0d\x0d\x0a' + b'\x1c\x00\x00\x00' + b'\x4d\x3c\x2b\x1a' + b'\x00' * 16
    with pytest.raises(UnsupportedCaptureFormatError) as exc_info:
        PcapReader(io.BytesIO(shb)).open()
    assert exc_info.value.format_name == 'pcapng'
    # still an invalid capture for callers catching the broader error
    assert isinstance(exc_info.value, InvalidCaptureError)


def test_truncated_global_header():
    with pytest.raises(InvalidCaptureError, match="Truncated"):
        PcapReader(io.BytesIO(pcap_header()[:10])).open()


def test_empty_stream():
    with pytest.raises(InvalidCaptureError):
        PcapReader(io.BytesIO(b'')).open()


def test_unsupported_version():
    with pytest.raises(InvalidCaptureError, match="version"):
        PcapReader(io.BytesIO(pcap_header(version=(3, 0)))).open()


def test_missing_file(tmp_path):
    with pytest.raises(CaptureOpenError):
        PcapReader(tmp_path / 'missing.pcap').open()


def test_missing_file_is_oserror(tmp_path):
    with pytest.raises(OSError):
        PcapReader(tmp_path / 'missing.pcap').open()


def test_corrupt_record_length():
    import struct
    raw = pcap_header() + struct.pack('<IIII', 1, 0, 0x7FFFFFFF, 60)
    with PcapReader(io.BytesIO(raw)) as reader:
        with pytest.raises(CaptureReadError):
            list(reader)


def test_io_error_mid_stream():
    raw = pcap_header() + pcap_record(1.0, tcp_frame())[:8]
    with PcapReader(FailingStream(raw)) as reader:
        with pytest.raises(CaptureReadError, match="device went away"):
            list(reader)


def test_iterate_without_open():
    reader = PcapReader(io.BytesIO(pcap_header()))
    with pytest.raises(RuntimeError):
        list(reader)


def test_stream_not_closed_by_reader():
    stream = io.BytesIO(pcap_bytes([(1.0, tcp_frame())]))
    with PcapReader(stream) as reader:
        list(reader)
    assert not stream.closed


def test_link_type_fcs_bits_masked():
    raw = pcap_header(linktype=0x10000000 | DLT_EN10MB)
    with PcapReader(io.BytesIO(raw)) as reader:
        assert reader.link_layer_type == DLT_EN10MB


def test_is_pcap_file(tmp_path):
    path = write_pcap(tmp_path / 'a.pcap', [])
    assert PcapReader.is_pcap_file(path)

    other = tmp_path / 'b.txt'
    other.write_bytes(b'hello world')
    assert not PcapReader.is_pcap_file(other)
    assert not PcapReader.is_pcap_file(tmp_path / 'nope.pcap')
