import struct

import pytest

from urlshortener.geo import GeoError, GeoService, Location, MaxMindReader


def _str(s):
    b = s.encode()
    return bytes([0x40 | len(b)]) + b


def _map(d):
    out = bytes([0xE0 | len(d)])
    for key, value in d.items():
        out += _str(key) + value
    return out


def _u16(n):
    return bytes([0xA2]) + n.to_bytes(2, "big")


def _u32(n):
    return bytes([0xC4]) + n.to_bytes(4, "big")


def _dbl(x):
    return bytes([0x68]) + struct.pack(">d", x)


def _build_db():
    data = _map({
        "country": _map({"iso_code": _str("TL"), "names": _map({"en": _str("Testland")})}),
        "city": _map({"names": _map({"en": _str("Testville")})}),
        "location": _map({"latitude": _dbl(1.5), "longitude": _dbl(-2.25), "time_zone": _str("Etc/UTC")}),
    })
    tree = (17).to_bytes(3, "big") + (1).to_bytes(3, "big")
    meta = _map({"node_count": _u32(1), "record_size": _u16(24), "ip_version": _u16(4)})
    return tree + bytes(16) + data + b"\xab\xcd\xefMaxMind.com" + meta


@pytest.fixture
def data_dir(tmp_path):
    (tmp_path / "geoip").mkdir()
    (tmp_path / "geoip" / "GeoLite2-City.mmdb").write_bytes(_build_db())
    return tmp_path


def test_lookup_found(data_dir):
    service = GeoService.from_data_dir(data_dir)
    loc = service.get_location("10.0.0.1")
    assert loc == Location("Testland", "Testville", 1.5, -2.25, "Etc/UTC", "TL")
    assert service.get_country("10.0.0.1") == "Testland"
    service.close()


def test_lookup_not_found_gives_empty_location(data_dir):
    service = GeoService.from_data_dir(data_dir)
    assert service.get_location("200.1.1.1") == Location()


def test_reader_metadata(data_dir):
    reader = MaxMindReader(data_dir / "geoip" / "GeoLite2-City.mmdb")
    assert reader.metadata == {"node_count": 1, "record_size": 24, "ip_version": 4}
    assert reader.lookup("200.1.1.1") is None
    reader.close()
    with pytest.raises(GeoError):
        reader.lookup("10.0.0.1")


def test_ipv6_in_ipv4_database(data_dir):
    service = GeoService.from_data_dir(data_dir)
    with pytest.raises(GeoError):
        service.get_location("::1")


def test_invalid_ip(data_dir):
    service = GeoService.from_data_dir(data_dir)
    with pytest.raises(GeoError, match="invalid IP address"):
        service.get_country("not-an-ip")


def test_missing_database(tmp_path):
    with pytest.raises(GeoError, match="GeoLite2 database file not found"):
        GeoService.from_data_dir(tmp_path)


def test_corrupt_database(tmp_path):
    path = tmp_path / "bad.mmdb"
    path.write_bytes(b"garbage")
    with pytest.raises(GeoError):
        MaxMindReader(path)


def test_no_reader_reports_unknown():
    assert GeoService().get_country("8.8.8.8") == "Unknown"