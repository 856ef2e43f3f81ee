#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
配置加载

读取 config.yaml，生成贯穿整个运行的只读 FilterConfig。
缺少的配置项使用下面的默认值，无效的值抛出 ConfigError。
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

import yaml

from blocklists.downloader import RetryPolicy
from blocklists.errors import ConfigError

# =========================
# 默认值
# =========================
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_CONFIG_FILE = os.path.join(SCRIPT_DIR, "config.yaml")

# I-BlockList (https://www.iblocklist.com/lists)
IBL_URL = "https://list.iblocklist.com/?list=%s&fileformat=p2p&archiveformat=gz"

# GeoLite2 (https://dev.maxmind.com/geoip/geoip2/geolite2)
GL2_URL = ("https://download.maxmind.com/app/geoip_download"
           "?edition_id=GeoLite2-Country-CSV&license_key=%s&suffix=zip")

DEFAULT_INSTALL_PATH = "ipfilter.p2p"
DEFAULT_IP_VERSIONS = ("IPv4",)
COMPRESSION_TYPES = ("none", "gzip", "bzip2", "zip")


@dataclass(frozen=True)
class IBlockListSource:
    name: str
    list_id: str


@dataclass(frozen=True)
class FilterConfig:
    iblocklist_url: str = IBL_URL
    iblocklist_lists: Tuple[IBlockListSource, ...] = ()
    geolite2_url: str = GL2_URL
    geolite2_license: str = ""
    geolite2_countries: Tuple[str, ...] = ()
    geolite2_ip_versions: Tuple[str, ...] = DEFAULT_IP_VERSIONS
    install_path: str = DEFAULT_INSTALL_PATH
    compression: str = "none"
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    max_workers: int = 4
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def geolite2_enabled(self):
        return bool(self.geolite2_license) and bool(self.geolite2_countries)


# =========================
# 辅助函数
# =========================

def _section(data, name):
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Setting '{name}' must be a mapping")
    return value


def _string(section, key, default, where):
    value = section.get(key, default)
    if value is None:
        return default
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ConfigError(f"Setting '{where}.{key}' must be a string")
    return str(value)


def _string_list(section, key, default, where):
    value = section.get(key)
    if value is None:
        return tuple(default)
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"Setting '{where}.{key}' must be a list of strings")
    return tuple(value)


def _number(section, key, default, where, minimum=0):
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"Setting '{where}.{key}' must be a number")
    if value < minimum:
        raise ConfigError(f"Setting '{where}.{key}' must be >= {minimum}")
    return value


def _url_template(section, key, default, where):
    url = _string(section, key, default, where)
    if url.count("%s") != 1:
        raise ConfigError(f"Setting '{where}.{key}' must contain exactly one '%s'")
    return url


def _iblocklist_sources(section):
    lists = section.get("lists")
    if lists is None:
        return ()
    if not isinstance(lists, dict):
        raise ConfigError("Setting 'iblocklist.lists' must be a mapping of name -> list id")
    sources = []
    # YAML 映射保持文件中的顺序
    for name, list_id in lists.items():
        if not list_id or not isinstance(list_id, str):
            raise ConfigError(f"I-BlockList list '{name}' has no list id")
        sources.append(IBlockListSource(str(name), list_id))
    return tuple(sources)


# =========================
# 加载
# =========================

def parse_config(data, base_dir=SCRIPT_DIR):
    """
    由解析后的 YAML 数据生成 FilterConfig

    Args:
        data: yaml.safe_load 返回的 dict（空文件为 None）
        base_dir: 相对路径的基准目录
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    ibl = _section(data, "iblocklist")
    gl2 = _section(data, "geolite2")
    output = _section(data, "output")
    download = _section(data, "download")
    logging_cfg = _section(data, "logging")

    compression = _string(output, "compression", "none", "output").lower()
    if compression not in COMPRESSION_TYPES:
        raise ConfigError(f"Invalid compression type '{compression}', "
                          f"expected one of: {', '.join(COMPRESSION_TYPES)}")

    install_path = _string(output, "install_path", DEFAULT_INSTALL_PATH, "output")
    install_path = os.path.join(base_dir, os.path.expanduser(install_path))

    log_file = logging_cfg.get("file")
    if log_file is not None:
        log_file = os.path.join(base_dir, os.path.expanduser(_string(logging_cfg, "file", "", "logging")))

    retry = RetryPolicy(
        max_attempts=int(_number(download, "retries", 2, "download")) + 1,
        connect_timeout=_number(download, "connect_timeout", 30, "download", minimum=1),
        read_timeout=_number(download, "read_timeout", 300, "download", minimum=1),
        backoff_factor=_number(download, "backoff_factor", 1, "download"),
    )

    return FilterConfig(
        iblocklist_url=_url_template(ibl, "url", IBL_URL, "iblocklist"),
        iblocklist_lists=_iblocklist_sources(ibl),
        geolite2_url=_url_template(gl2, "url", GL2_URL, "geolite2"),
        geolite2_license=_string(gl2, "license_key", "", "geolite2").strip(),
        geolite2_countries=_string_list(gl2, "countries", (), "geolite2"),
        geolite2_ip_versions=_string_list(gl2, "ip_versions", DEFAULT_IP_VERSIONS, "geolite2"),
        install_path=install_path,
        compression=compression,
        retry=retry,
        max_workers=int(_number(download, "max_workers", 4, "download", minimum=1)),
        log_level=_string(logging_cfg, "level", "INFO", "logging").upper(),
        log_file=log_file,
    )


def load_config(config_file=DEFAULT_CONFIG_FILE):
    """加载yaml配置文件"""
    if not os.path.exists(config_file):
        raise ConfigError(f"Configuration file '{config_file}' does not exist")

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read configuration file '{config_file}': {e}") from e

    return parse_config(data, base_dir=os.path.dirname(os.path.abspath(config_file)))
