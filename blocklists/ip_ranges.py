#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
CIDR 转 IP 地址范围

两个转换函数都返回 CIDR 网段的闭区间 (起始, 结束)，均为字符串：
IPv4 为点分十进制，IPv6 为完整展开的小写十六进制。
IPv6 按 16 位分组逐组计算掩码，不需要 128 位运算。
"""

import re
from enum import Enum

from blocklists.errors import InvalidCIDR, UnknownIPVersion

HEX_WORD = re.compile(r"^[0-9a-fA-F]{1,4}$")


def _is_decimal(text):
    return text.isascii() and text.isdigit()


def _split_cidr(cidr, max_bits):
    """拆分 '地址/前缀' 并校验前缀长度"""
    if not isinstance(cidr, str) or cidr.count("/") != 1:
        raise InvalidCIDR(cidr, "expected <address>/<prefix>")

    address, prefix = cidr.strip().split("/")
    if not _is_decimal(prefix):
        raise InvalidCIDR(cidr, f"non-numeric prefix length '{prefix}'")

    bits = int(prefix, 10)
    if bits > max_bits:
        raise InvalidCIDR(cidr, f"prefix length {bits} out of range 0-{max_bits}")
    return address, bits


# =========================
# IPv4
# =========================

def parse_ipv4(address, cidr=None):
    """返回点分十进制地址的 32 位数值"""
    octets = address.split(".")
    if len(octets) != 4:
        raise InvalidCIDR(cidr or address, f"expected 4 octets, got {len(octets)}")

    value = 0
    for octet in octets:
        if not _is_decimal(octet):
            raise InvalidCIDR(cidr or address, f"non-numeric octet '{octet}'")
        # 前导零按十进制处理，不是八进制
        number = int(octet, 10)
        if number > 255:
            raise InvalidCIDR(cidr or address, f"octet {number} out of range")
        value = (value << 8) | number
    return value


def format_ipv4(value):
    return f"{value >> 24}.{(value >> 16) & 0xFF}.{(value >> 8) & 0xFF}.{value & 0xFF}"


def cidr_to_range_ipv4(cidr):
    """
    将 IPv4 CIDR 转换为地址范围

    Args:
        cidr: 'a.b.c.d/n'，n 为 0..32

    Returns:
        tuple: (起始 IP, 结束 IP)，点分十进制字符串
    """
    address, bits = _split_cidr(cidr, 32)
    ip = parse_ipv4(address, cidr)

    # Python 整数不会溢出，最后的掩码保证起始地址在 32 位内
    start = ip & ((0xFFFFFFFF << (32 - bits)) & 0xFFFFFFFF)
    end = ip | (0xFFFFFFFF >> bits)
    return format_ipv4(start), format_ipv4(end)


# =========================
# IPv6
# =========================

def expand_ipv6(address, cidr=None):
    """
    将 IPv6 地址展开为 8 个 16 位分组

    唯一的 '::' 替换为所缺数量的零分组。
    """
    if address.count("::") > 1:
        raise InvalidCIDR(cidr or address, "more than one '::'")

    if "::" in address:
        left, right = address.split("::")
        head = left.split(":") if left else []
        tail = right.split(":") if right else []
        missing = 8 - len(head) - len(tail)
        if missing < 1:
            raise InvalidCIDR(cidr or address, "'::' does not elide any group")
        groups = head + ["0"] * missing + tail
    else:
        groups = address.split(":")

    if len(groups) != 8:
        raise InvalidCIDR(cidr or address, f"expected 8 groups, got {len(groups)}")

    words = []
    for group in groups:
        if not HEX_WORD.match(group):
            raise InvalidCIDR(cidr or address, f"invalid group '{group}'")
        words.append(int(group, 16))
    return words


def cidr_to_range_ipv6(cidr):
    """
    将 IPv6 CIDR 转换为地址范围

    Args:
        cidr: '地址/n'，n 为 0..128

    Returns:
        tuple: (起始 IP, 结束 IP)，8 组冒号分隔的 4 位小写十六进制
    """
    address, bits = _split_cidr(cidr, 128)
    words = expand_ipv6(address, cidr)

    start_words = []
    end_words = []
    remaining = bits
    for word in words:
        wb = min(remaining, 16)
        start_words.append(word & ((0xFFFF << (16 - wb)) & 0xFFFF))
        end_words.append(word | (0xFFFF >> wb))
        remaining -= wb

    start = ":".join(f"{w:04x}" for w in start_words)
    end = ":".join(f"{w:04x}" for w in end_words)
    return start, end


# =========================
# IP 版本
# =========================

class IPVersion(Enum):
    IPV4 = "IPv4"
    IPV6 = "IPv6"

    @property
    def label(self):
        return self.value

    @classmethod
    def parse(cls, name):
        """按名称查找版本，不区分大小写（'ipv4'、'IPv6' 等）"""
        if isinstance(name, cls):
            return name
        for version in cls:
            if isinstance(name, str) and name.strip().lower() == version.value.lower():
                return version
        raise UnknownIPVersion(name)

    def to_range(self, cidr):
        return CONVERTERS[self](cidr)


CONVERTERS = {
    IPVersion.IPV4: cidr_to_range_ipv4,
    IPVersion.IPV6: cidr_to_range_ipv6,
}


def cidr_to_range(cidr, version):
    """用对应 IP 版本的转换函数转换 CIDR"""
    return CONVERTERS[IPVersion.parse(version)](cidr)
