#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
I-BlockList 黑名单采集

下载配置的 p2p 黑名单（gzip 压缩），逐个解压到工作目录，再合并为一个分组文件。
"""

import gzip
import os
import shutil
import zlib

from blocklists.combine.combine import count_lines, merge_files
from blocklists.downloader import download_file
from blocklists.errors import DownloadFailure
from blocklists.results import FetchResult
from blocklists.workers import run_collections
from logger_utils import get_logger

logger = get_logger()

# =========================
# 文件名（位于工作目录下）
# =========================
IBL_FIN1 = "iblocklist-{}.p2p.gz"
IBL_FIN2 = "iblocklist-{}.p2p"
IBL_FOUT = "iblocklist-merged.p2p"


def decompress_list(src, dest):
    """解压 src 到 dest，返回行数"""
    try:
        with gzip.open(src, "rb") as f_in, open(dest, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out)
    except (OSError, EOFError, zlib.error) as e:
        # 截断或不是 gzip 的响应按下载失败处理
        raise DownloadFailure(str(src), f"cannot decompress: {e}") from e

    return count_lines(dest)


def fetch_list(source, workdir, session, config):
    """
    下载并解压一个 I-BlockList 黑名单

    Args:
        source: IBlockListSource（名称, list id）
        workdir: 工作目录
        session: requests.Session
        config: FilterConfig

    Returns:
        解压后 p2p 文件的 FetchResult
    """
    url = config.iblocklist_url % source.list_id
    archive = os.path.join(workdir, IBL_FIN1.format(source.name))
    p2p_file = os.path.join(workdir, IBL_FIN2.format(source.name))

    logger.info(f"Downloading I-BlockList blocklist '{source.name}'...")
    download_file(session, url, archive, config.retry)

    logger.info(f"Decompressing I-BlockList blocklist '{source.name}'...")
    line_count = decompress_list(archive, p2p_file)
    return FetchResult(source.name, p2p_file, line_count)


def fetch_lists(config, workdir, session):
    """
    并行下载所有配置的黑名单

    第一个失败会中止尚未开始的下载。

    Returns:
        FetchResult 列表，顺序与配置相同
    """
    sources = list(config.iblocklist_lists)
    if not sources:
        return []

    logger.info(f"[+] Downloading {len(sources)} I-BlockList blocklists...")
    jobs = [(source.name, fetch_list, (source, workdir, session, config)) for source in sources]
    return run_collections(jobs, config.max_workers)


def build_group(config, workdir, session):
    """
    采集并合并所有 I-BlockList 黑名单

    Returns:
        分组文件路径（未配置黑名单时为空文件）
    """
    dest = os.path.join(workdir, IBL_FOUT)

    results = fetch_lists(config, workdir, session)
    if not results:
        logger.info("[-] No I-BlockList blocklists configured, skipping")
        open(dest, "w").close()
        return dest

    logger.info("[+] Merging I-BlockList blocklists...")
    merge_files([r.path for r in results], dest, group_name="I-BlockList")
    return dest
