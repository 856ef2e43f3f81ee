import ipaddress

import pytest

from blocklists.errors import InvalidCIDR, UnknownIPVersion
from blocklists.ip_ranges import (
    IPVersion,
    cidr_to_range,
    cidr_to_range_ipv4,
    cidr_to_range_ipv6,
    expand_ipv6,
)


# =========================
# IPv4
# =========================

def test_ipv4_class_c():
    assert cidr_to_range_ipv4("5.10.20.0/24") == ("5.10.20.0", "5.10.20.255")


def test_ipv4_host_bits_are_cleared_and_set():
    assert cidr_to_range_ipv4("10.1.2.3/8") == ("10.0.0.0", "10.255.255.255")


def test_ipv4_prefix_32_is_single_address():
    assert cidr_to_range_ipv4("192.0.2.77/32") == ("192.0.2.77", "192.0.2.77")


def test_ipv4_prefix_0_is_whole_space():
    assert cidr_to_range_ipv4("203.0.113.9/0") == ("0.0.0.0", "255.255.255.255")


def test_ipv4_leading_zeros_are_decimal():
    assert cidr_to_range_ipv4("010.008.0.1/32") == ("10.8.0.1", "10.8.0.1")


@pytest.mark.parametrize("prefix", range(33))
def test_ipv4_matches_network_bounds(prefix):
    network = ipaddress.ip_network(f"203.0.113.77/{prefix}", strict=False)
    start, end = cidr_to_range_ipv4(f"203.0.113.77/{prefix}")

    assert start == str(network.network_address)
    assert end == str(network.broadcast_address)
    assert int(ipaddress.ip_address(start)) <= int(ipaddress.ip_address(end))


@pytest.mark.parametrize("cidr", [
    "1.2.3/24",
    "1.2.3.4.5/24",
    "1.2.3.4",
    "1.2.3.4/33",
    "1.2.3.4/-1",
    "1.2.3.4/",
    "a.b.c.d/8",
    "1.2.3.256/8",
    "1.2..4/8",
    "1.2.3.4/x",
    "1.2.3.4/8/8",
    "",
])
def test_ipv4_invalid(cidr):
    with pytest.raises(InvalidCIDR):
        cidr_to_range_ipv4(cidr)


# =========================
# IPv6
# =========================

def test_ipv6_documentation_prefix():
    assert cidr_to_range_ipv6("2001:db8::/32") == (
        "2001:0db8:0000:0000:0000:0000:0000:0000",
        "2001:0db8:ffff:ffff:ffff:ffff:ffff:ffff",
    )


def test_ipv6_prefix_inside_a_word():
    assert cidr_to_range_ipv6("2a02:8109:9c40::/42") == (
        "2a02:8109:9c40:0000:0000:0000:0000:0000",
        "2a02:8109:9c7f:ffff:ffff:ffff:ffff:ffff",
    )


def test_ipv6_prefix_0_and_128():
    assert cidr_to_range_ipv6("::/0") == (
        "0000:0000:0000:0000:0000:0000:0000:0000",
        "ffff:ffff:ffff:ffff:ffff:ffff:ffff:ffff",
    )
    assert cidr_to_range_ipv6("::1/128") == (
        "0000:0000:0000:0000:0000:0000:0000:0001",
        "0000:0000:0000:0000:0000:0000:0000:0001",
    )


def test_ipv6_output_is_lowercase():
    start, end = cidr_to_range_ipv6("2001:DB8:ABCD::/48")
    assert start == "2001:0db8:abcd:0000:0000:0000:0000:0000"
    assert end == "2001:0db8:abcd:ffff:ffff:ffff:ffff:ffff"


@pytest.mark.parametrize("prefix", range(129))
def test_ipv6_matches_network_bounds_and_round_trips(prefix):
    cidr = f"2001:db8:85a3::8a2e:370:7334/{prefix}"
    network = ipaddress.ip_network(cidr, strict=False)
    start, end = cidr_to_range_ipv6(cidr)

    assert start == network.network_address.exploded
    assert end == network.broadcast_address.exploded
    assert start <= end
    assert cidr_to_range_ipv6(f"{start}/{prefix}") == (start, end)


@pytest.mark.parametrize("address,words", [
    ("::", [0] * 8),
    ("1::", [1, 0, 0, 0, 0, 0, 0, 0]),
    ("::ffff", [0, 0, 0, 0, 0, 0, 0, 0xffff]),
    ("1:2:3:4:5:6:7::", [1, 2, 3, 4, 5, 6, 7, 0]),
    ("1:2:3:4:5:6:7:8", [1, 2, 3, 4, 5, 6, 7, 8]),
])
def test_expand_ipv6(address, words):
    assert expand_ipv6(address) == words


@pytest.mark.parametrize("cidr", [
    "1::2::3/64",
    "1:2:3:4:5:6:7:8:9/64",
    "1:2:3:4:5:6:7/64",
    "1:2:3:4:5:6:7:8::/64",
    "12345::/16",
    "gggg::/16",
    "2001:db8::/129",
    "2001:db8::",
    "::ffff:1.2.3.4/128",
])
def test_ipv6_invalid(cidr):
    with pytest.raises(InvalidCIDR):
        cidr_to_range_ipv6(cidr)


# =========================
# IP version dispatch
# =========================

@pytest.mark.parametrize("name,version", [
    ("IPv4", IPVersion.IPV4),
    ("ipv4", IPVersion.IPV4),
    ("IPV6", IPVersion.IPV6),
    (" ipv6 ", IPVersion.IPV6),
    (IPVersion.IPV6, IPVersion.IPV6),
])
def test_ip_version_parse(name, version):
    assert IPVersion.parse(name) is version


@pytest.mark.parametrize("name", ["IPv5", "", "4", None])
def test_ip_version_parse_unknown(name):
    with pytest.raises(UnknownIPVersion):
        IPVersion.parse(name)


def test_cidr_to_range_dispatches_by_version():
    assert cidr_to_range("5.10.20.0/24", "ipv4") == ("5.10.20.0", "5.10.20.255")
    assert cidr_to_range("::/127", IPVersion.IPV6)[1] == "0000:0000:0000:0000:0000:0000:0000:0001"
    assert IPVersion.IPV4.to_range("1.2.3.4/31") == ("1.2.3.4", "1.2.3.5")
    assert IPVersion.IPV4.label == "IPv4"
