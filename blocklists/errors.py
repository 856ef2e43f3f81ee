#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
生成 IP 过滤文件时使用的异常

记录级错误（InvalidCIDR、MalformedRecord、UnknownCountry、UnknownIPVersion）
在处理记录的地方捕获，记录告警后跳过；其余错误中止整个运行。
"""


class IPFilterError(Exception):
    """所有 IP 过滤错误的基类"""


class InvalidCIDR(IPFilterError):
    def __init__(self, cidr, reason=""):
        self.cidr = cidr
        self.reason = reason
        message = f"Invalid CIDR '{cidr}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class MalformedRecord(IPFilterError):
    def __init__(self, row, reason=""):
        self.row = row
        message = f"Malformed record {row!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class UnknownCountry(IPFilterError):
    def __init__(self, country):
        self.country = country
        super().__init__(f"Unknown country '{country}'")


class UnknownIPVersion(IPFilterError):
    def __init__(self, version):
        self.version = version
        super().__init__(f"Unknown IP version '{version}'")


class DownloadFailure(IPFilterError):
    def __init__(self, url, reason=""):
        self.url = url
        message = f"Failed to download '{url}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DatabaseError(IPFilterError):
    """GeoLite2 压缩包无法读取或缺少必需的表"""


class ToolUnavailable(IPFilterError):
    def __init__(self, tool):
        self.tool = tool
        super().__init__(f"Command '{tool}' is not available")


MissingDependency = ToolUnavailable


class ConfigError(IPFilterError):
    """配置文件不存在或无效"""
