#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
带有限重试策略的 HTTP 下载

重试和退避交给 requests Session 上挂载的 urllib3 Retry 处理。
重试用尽后抛出 DownloadFailure，整个运行随之失败。
"""

import re
from dataclasses import dataclass

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from blocklists.errors import DownloadFailure
from logger_utils import get_logger

logger = get_logger()

USER_AGENT = "ipfilter-updater"
CHUNK_SIZE = 64 * 1024

# 查询字符串中的 license_key=... 等敏感参数
SECRET_PARAM = re.compile(r"((?:license_key|key|token)=)[^&]+", re.IGNORECASE)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    connect_timeout: float = 30
    read_timeout: float = 300
    backoff_factor: float = 1

    @property
    def timeout(self):
        return (self.connect_timeout, self.read_timeout)


def mask_url(url):
    """记录日志前隐藏 URL 中的敏感参数"""
    return SECRET_PARAM.sub(r"\1***", url)


def create_session(policy):
    """创建按重试策略自动重试的 HTTP 会话"""
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})

    retry_strategy = Retry(
        total=max(policy.max_attempts - 1, 0),
        backoff_factor=policy.backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["HEAD", "GET"],
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def download_file(session, url, dest, policy):
    """
    下载 url 到 dest

    Args:
        session: requests.Session（见 create_session）
        url: 下载地址
        dest: 保存路径
        policy: 提供超时设置的 RetryPolicy

    Returns:
        int: 写入的字节数
    """
    safe_url = mask_url(url)
    logger.debug(f"GET {safe_url} -> {dest}")

    size = 0
    try:
        with session.get(url, stream=True, timeout=policy.timeout) as resp:
            resp.raise_for_status()
            with open(dest, "wb") as f:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        size += len(chunk)
    except requests.RequestException as e:
        raise DownloadFailure(safe_url, mask_url(str(e))) from e

    logger.debug(f"Downloaded {size:,} bytes from {safe_url}")
    return size
