"""IP geolocation backed by a MaxMind DB (GeoLite2) file."""

from __future__ import annotations

import ipaddress
import os
import struct
from dataclasses import dataclass
from typing import Any

_METADATA_MARKER = b"\xab\xcd\xefMaxMind.com"
_DATA_SEPARATOR = 16


class GeoError(Exception):
    """A geolocation lookup failed."""


@dataclass
class Location:
    """A geographical location."""

    country: str = ""
    city: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    timezone: str = ""
    country_code: str = ""

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


class _Decoder:
    def __init__(self, buf: bytes, base: int) -> None:
        self._buf = buf
        self._base = base

    def _uint(self, start: int, size: int) -> int:
        return int.from_bytes(self._buf[start:start + size], "big")

    def decode(self, offset: int) -> tuple[Any, int]:
        buf = self._buf
        ctrl = buf[offset]
        offset += 1
        kind = ctrl >> 5
        if kind == 1:
            return self._pointer(ctrl, offset)
        if kind == 0:
            kind = 7 + buf[offset]
            offset += 1
        size = ctrl & 0x1F
        if size == 29:
            size = 29 + buf[offset]
            offset += 1
        elif size == 30:
            size = 285 + self._uint(offset, 2)
            offset += 2
        elif size == 31:
            size = 65821 + self._uint(offset, 3)
            offset += 3
        return self._value(kind, size, offset)

    def _pointer(self, ctrl: int, offset: int) -> tuple[Any, int]:
        size = (ctrl >> 3) & 0x3
        low = ctrl & 0x7
        if size == 0:
            target = (low << 8) | self._buf[offset]
        elif size == 1:
            target = ((low << 16) | self._uint(offset, 2)) + 2048
        elif size == 2:
            target = ((low << 24) | self._uint(offset, 3)) + 526336
        else:
            target = self._uint(offset, 4)
        value, _ = self.decode(self._base + target)
        return value, offset + size + 1

    def _value(self, kind: int, size: int, offset: int) -> tuple[Any, int]:
        end = offset + size
        raw = self._buf[offset:end]
        if kind == 2:
            return raw.decode("utf-8"), end
        if kind == 3:
            if size != 8:
                raise GeoError("invalid double size in database")
            return struct.unpack(">d", raw)[0], end
        if kind == 4:
            return bytes(raw), end
        if kind in (5, 6, 9, 10):
            return int.from_bytes(raw, "big"), end
        if kind == 8:
            value = int.from_bytes(raw, "big")
            if size == 4 and value >= 1 << 31:
                value -= 1 << 32
            return value, end
        if kind == 7:
            result: dict[str, Any] = {}
            for _ in range(size):
                key, offset = self.decode(offset)
                result[key], offset = self.decode(offset)
            return result, offset
        if kind == 11:
            items = []
            for _ in range(size):
                item, offset = self.decode(offset)
                items.append(item)
            return items, offset
        if kind == 14:
            return size != 0, offset
        if kind == 15:
            if size != 4:
                raise GeoError("invalid float size in database")
            return struct.unpack(">f", raw)[0], end
        raise GeoError(f"unsupported data type {kind} in database")


class MaxMindReader:
    """Reader of MaxMind DB files."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        try:
            with open(path, "rb") as fh:
                self._buf: bytes | None = fh.read()
        except OSError as exc:
            raise GeoError(f"failed to open GeoLite2 database: {exc}") from exc
        marker = self._buf.rfind(_METADATA_MARKER)
        if marker < 0:
            raise GeoError("failed to open GeoLite2 database: metadata not found")
        meta_start = marker + len(_METADATA_MARKER)
        metadata, _ = _Decoder(self._buf, meta_start).decode(meta_start)
        try:
            self._node_count = int(metadata["node_count"])
            self._record_size = int(metadata["record_size"])
            self._ip_version = int(metadata["ip_version"])
        except (KeyError, TypeError) as exc:
            raise GeoError("failed to open GeoLite2 database: bad metadata") from exc
        if self._record_size not in (24, 28, 32):
            raise GeoError(f"unsupported record size {self._record_size}")
        self._node_bytes = self._record_size // 4
        self._data_start = self._node_count * self._node_bytes + _DATA_SEPARATOR
        self._decoder = _Decoder(self._buf, self._data_start)
        self.metadata = metadata

    def _record(self, node: int, bit: int) -> int:
        assert self._buf is not None
        base = node * self._node_bytes
        chunk = self._buf[base:base + self._node_bytes]
        if self._record_size == 24:
            part = chunk[3:6] if bit else chunk[0:3]
            return int.from_bytes(part, "big")
        if self._record_size == 28:
            if bit:
                return ((chunk[3] & 0x0F) << 24) | int.from_bytes(chunk[4:7], "big")
            return ((chunk[3] >> 4) << 24) | int.from_bytes(chunk[0:3], "big")
        part = chunk[4:8] if bit else chunk[0:4]
        return int.from_bytes(part, "big")

    def lookup(self, ip: str | ipaddress.IPv4Address | ipaddress.IPv6Address) -> dict[str, Any] | None:
        """Return the record for an address, or None if the database has none."""
        if self._buf is None:
            raise GeoError("database is closed")
        addr = ipaddress.ip_address(ip) if isinstance(ip, str) else ip
        if addr.version == 6 and self._ip_version == 4:
            raise GeoError(
                f"error looking up '{addr}': you attempted to look up an IPv6 address in an IPv4-only database"
            )
        bit_count = 128 if self._ip_version == 6 else 32
        value = int(addr)
        node = 0
        for shift in range(bit_count - 1, -1, -1):
            if node >= self._node_count:
                break
            node = self._record(node, (value >> shift) & 1)
        if node == self._node_count:
            return None
        if node < self._node_count:
            raise GeoError("invalid node in search tree")
        offset = node - self._node_count - _DATA_SEPARATOR
        record, _ = self._decoder.decode(self._data_start + offset)
        return record

    def close(self) -> None:
        """Release the database contents."""
        self._buf = None


def _parse_ip(ip: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    try:
        return ipaddress.ip_address(ip.strip())
    except ValueError:
        raise GeoError(f"invalid IP address: {ip}") from None


class GeoService:
    """IP-based location lookups; works without a database as well."""

    def __init__(self, reader: MaxMindReader | None = None) -> None:
        self._reader = reader

    @classmethod
    def from_data_dir(cls, data_dir: str | os.PathLike[str]) -> GeoService:
        """Open ``<data_dir>/geoip/GeoLite2-City.mmdb``."""
        path = os.path.join(data_dir, "geoip", "GeoLite2-City.mmdb")
        if not os.path.exists(path):
            raise GeoError(f"GeoLite2 database file not found at {path}")
        return cls(MaxMindReader(path))

    def get_location(self, ip: str) -> Location:
        """Look up the full location of an address."""
        addr = _parse_ip(ip)
        if self._reader is None:
            raise GeoError("failed to lookup IP: no database loaded")
        record = self._reader.lookup(addr) or {}
        country = record.get("country", {})
        city = record.get("city", {})
        loc = record.get("location", {})
        return Location(
            country=country.get("names", {}).get("en", ""),
            city=city.get("names", {}).get("en", ""),
            latitude=float(loc.get("latitude", 0.0)),
            longitude=float(loc.get("longitude", 0.0)),
            timezone=loc.get("time_zone", ""),
            country_code=country.get("iso_code", ""),
        )

    def get_country(self, ip: str) -> str:
        """English country name of an address, or ``Unknown`` without a database."""
        if self._reader is None:
            return "Unknown"
        return self.get_location(ip).country

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()