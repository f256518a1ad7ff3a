"""
PcapReader - legacy pcap capture reader.

Reads the classic libpcap container (micro- and nanosecond variants, either
byte order) from a path or any readable binary stream. pcapng is recognized
only so that it can be rejected with a distinct error.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Iterator, NamedTuple

import dpkt

from pcapdiag.errors import (
    CaptureOpenError,
    CaptureReadError,
    InvalidCaptureError,
    UnsupportedCaptureFormatError,
)

logger = logging.getLogger(__name__)


# DLT (Data Link Type) constants
DLT_NULL = 0           # BSD loopback
DLT_EN10MB = 1         # Ethernet
DLT_RAW = 101          # Raw IP
DLT_LOOP = 108         # OpenBSD loopback
DLT_LINUX_SLL = 113    # Linux cooked capture

# Some platforms write raw IP as 12 or 14 instead of 101
DLT_RAW_ALT = (12, 14)

PCAPNG_MAGIC = b'\x0a\x0d\x0d\x0a'

GLOBAL_HEADER_LEN = 24
RECORD_HEADER_LEN = 16
DEFAULT_BUFFER_SIZE = 65536
MAX_RECORD_LEN = 64 * 1024 * 1024

# magic -> (big endian, timestamp divisor)
_MAGICS = {
    dpkt.pcap.TCPDUMP_MAGIC: (True, 1e6),
    dpkt.pcap.TCPDUMP_MAGIC_NANO: (True, 1e9),
    dpkt.pcap.PMUDPCT_MAGIC: (False, 1e6),
    dpkt.pcap.PMUDPCT_MAGIC_NANO: (False, 1e9),
}


class LinkLayerType:
    """Link layer type support."""
    ETHERNET = "ethernet"
    LINUX_SLL = "linux_sll"
    RAW_IP = "raw_ip"
    NULL = "null"
    UNKNOWN = "unknown"


def get_link_layer_type(dlt: int) -> str:
    """Get link layer type name from DLT value."""
    if dlt in DLT_RAW_ALT:
        return LinkLayerType.RAW_IP
    mapping = {
        DLT_EN10MB: LinkLayerType.ETHERNET,
        DLT_LINUX_SLL: LinkLayerType.LINUX_SLL,
        DLT_RAW: LinkLayerType.RAW_IP,
        DLT_NULL: LinkLayerType.NULL,
        DLT_LOOP: LinkLayerType.NULL,
    }
    return mapping.get(dlt, LinkLayerType.UNKNOWN)


class Frame(NamedTuple):
    """One captured frame: capture timestamp, captured bytes, original length."""
    timestamp: float
    data: bytes
    wirelen: int


class PcapReader:
    """
    Legacy pcap reader.

    ``open()`` validates the global header and is where every header-level
    error is raised; iteration afterwards yields ``Frame`` objects lazily.
    Reads go through an internal buffer that is refilled until a record is
    complete, so sources that return short reads (pipes, sockets, slow
    streams) are handled transparently.

    Examples:
        >>> with PcapReader('traffic.pcap') as reader:
        ...     for frame in reader:
        ...         print(frame.timestamp, len(frame.data))
    """

    def __init__(self, source: str | Path | BinaryIO, buffer_size: int = DEFAULT_BUFFER_SIZE):
        if isinstance(source, (str, Path)):
            self.pcap_path: Path | None = Path(source)
            self._stream: BinaryIO | None = None
        else:
            self.pcap_path = None
            self._stream = source
        self.buffer_size = buffer_size
        self._owns_stream = False
        self._opened = False
        self._buffer = bytearray()
        self._eof = False
        self._big_endian = False
        self._divisor = 1e6
        self._pkt_hdr_cls = dpkt.pcap.LEPktHdr
        self._link_layer_type: int | None = None
        self._link_layer_name: str = LinkLayerType.UNKNOWN
        self.snaplen = 0
        self.version: tuple[int, int] = (0, 0)

    def open(self) -> None:
        """Open the source and parse the global header."""
        if self._opened:
            return

        if self._stream is None:
            try:
                self._stream = open(self.pcap_path, 'rb')
            except OSError as e:
                raise CaptureOpenError(f"Cannot open capture {self.pcap_path}: {e}") from e
            self._owns_stream = True

        try:
            self._read_global_header()
        except Exception:
            self.close()
            raise
        self._opened = True

    def close(self) -> None:
        """Close the source if this reader opened it."""
        if self._owns_stream and self._stream is not None:
            self._stream.close()
            self._stream = None
            self._owns_stream = False
        self._opened = False
        self._buffer.clear()

    def __enter__(self) -> PcapReader:
        self.open()
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def link_layer_type(self) -> int:
        """Get the DLT link layer type."""
        if self._link_layer_type is None:
            raise RuntimeError("Reader not opened")
        return self._link_layer_type

    @property
    def link_layer_name(self) -> str:
        """Get the link layer type name."""
        return self._link_layer_name

    @property
    def nanosecond_resolution(self) -> bool:
        return self._divisor == 1e9

    def _read_global_header(self) -> None:
        buf = self._take(GLOBAL_HEADER_LEN)

        if buf[:4] == PCAPNG_MAGIC:
            raise UnsupportedCaptureFormatError("pcapng")
        if len(buf) < GLOBAL_HEADER_LEN:
            raise InvalidCaptureError(
                f"Truncated pcap global header ({len(buf)} of {GLOBAL_HEADER_LEN} bytes)"
            )

        magic = int.from_bytes(buf[:4], 'big')
        if magic not in _MAGICS:
            raise InvalidCaptureError(f"Unknown pcap magic number: 0x{magic:08x}")

        self._big_endian, self._divisor = _MAGICS[magic]
        if self._big_endian:
            hdr = dpkt.pcap.FileHdr(buf)
            self._pkt_hdr_cls = dpkt.pcap.PktHdr
        else:
            hdr = dpkt.pcap.LEFileHdr(buf)
            self._pkt_hdr_cls = dpkt.pcap.LEPktHdr

        if hdr.v_major != dpkt.pcap.PCAP_VERSION_MAJOR:
            raise InvalidCaptureError(f"Unsupported pcap version {hdr.v_major}.{hdr.v_minor}")

        self.version = (hdr.v_major, hdr.v_minor)
        self.snaplen = hdr.snaplen
        # upper bits may carry FCS information
        self._link_layer_type = hdr.linktype & 0x0FFFFFFF
        self._link_layer_name = get_link_layer_type(self._link_layer_type)
        logger.debug(
            "Opened pcap v%d.%d linktype=%d (%s) %s",
            hdr.v_major, hdr.v_minor, self._link_layer_type, self._link_layer_name,
            "big-endian" if self._big_endian else "little-endian",
        )

    def _refill(self) -> bool:
        """Append one chunk from the stream to the buffer. False at end of stream."""
        if self._eof:
            return False
        try:
            chunk = self._stream.read(self.buffer_size)
        except OSError as e:
            raise CaptureReadError(f"I/O error while reading capture: {e}") from e
        if not chunk:
            self._eof = True
            return False
        self._buffer.extend(chunk)
        return True

    def _take(self, n: int) -> bytes:
        """Remove and return up to ``n`` bytes, refilling until satisfied or EOF."""
        while len(self._buffer) < n:
            if not self._refill():
                break
        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    def __iter__(self) -> Iterator[Frame]:
        """Iterate over frames in the capture."""
        if not self._opened:
            raise RuntimeError("Reader not opened. Call open() first.")

        while True:
            hdr_buf = self._take(RECORD_HEADER_LEN)
            if not hdr_buf:
                return
            if len(hdr_buf) < RECORD_HEADER_LEN:
                logger.warning("Capture ends with a truncated record header (%d bytes)", len(hdr_buf))
                return

            hdr = self._pkt_hdr_cls(hdr_buf)
            if hdr.caplen > MAX_RECORD_LEN:
                raise CaptureReadError(f"Corrupt record header: captured length {hdr.caplen}")

            data = self._take(hdr.caplen)
            if len(data) < hdr.caplen:
                logger.warning(
                    "Capture ends with a truncated record (%d of %d bytes)", len(data), hdr.caplen
                )
                return

            yield Frame(hdr.tv_sec + hdr.tv_usec / self._divisor, data, hdr.len)

    @staticmethod
    def is_pcap_file(path: str | Path) -> bool:
        """Check if file starts with a legacy pcap magic number."""
        path = Path(path)
        if not path.is_file():
            return False

        try:
            with open(path, 'rb') as f:
                magic = f.read(4)
        except OSError:
            return False

        return len(magic) == 4 and int.from_bytes(magic, 'big') in _MAGICS
