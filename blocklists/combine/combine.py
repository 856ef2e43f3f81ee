#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
黑名单合并脚本
功能：
1. 按调用顺序拼接同一组黑名单的所有行
2. 去掉空行和 '#' 注释行
3. 版本排序并去重
4. 将各组文件拼接为最终的 IP 过滤文件（不再排序）

源文件中不是 UTF-8 的字节原样保留（surrogateescape 读写）。
"""

import re
from collections import OrderedDict

from logger_utils import get_logger, log_list_merge

logger = get_logger()

DIGIT_RUNS = re.compile(r"(\d+)")

# 读写使用同一组参数，字节可以无损往返
ENCODING = "utf-8"
ERRORS = "surrogateescape"


# =========================
# 排序规则
# =========================

def version_sort_key(line):
    """
    版本排序的键

    数字段按数值比较，所以 '2.0.0.0' 排在 '1.255.255.255' 之后。
    re.split 带捕获组时文本在偶数位、数字在奇数位，比较的元素类型总是一致。
    '01' 与 '1' 这类相等值由原始行决定先后。
    """
    parts = DIGIT_RUNS.split(line)
    return [int(part) if i % 2 else part for i, part in enumerate(parts)], line


def is_range_line(line):
    return bool(line) and not line.startswith("#")


# =========================
# 合并
# =========================

def merge_lines(groups):
    """
    将多组行合并为一个规范的黑名单

    Args:
        groups: 多个行序列，按给定顺序拼接

    Returns:
        list: 已排序、无重复、无空行和注释行的行列表
    """
    lines = []
    for group in groups:
        for line in group:
            line = line.rstrip("\r\n")
            if is_range_line(line):
                lines.append(line)

    lines.sort(key=version_sort_key)

    # uniq：输入已排序，去掉相邻重复即为全局去重
    merged = []
    for line in lines:
        if not merged or merged[-1] != line:
            merged.append(line)
    return merged


def read_lines(path):
    # newline='' 只按行尾切分，不改写行内容
    with open(path, "r", encoding=ENCODING, errors=ERRORS, newline="") as f:
        return [line.rstrip("\r\n") for line in f]


def write_lines(path, lines):
    with open(path, "w", encoding=ENCODING, errors=ERRORS, newline="\n") as f:
        for line in lines:
            f.write(line + "\n")


def count_lines(path):
    """统计文件行数（最后一行没有换行符也计入）"""
    count = 0
    last = b"\n"
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(64 * 1024), b""):
            count += chunk.count(b"\n")
            last = chunk[-1:]
    return count if last == b"\n" else count + 1


def merge_files(sources, dest, group_name=None):
    """
    合并黑名单文件到 dest

    Args:
        sources: 文件路径，按合并顺序
        dest: 输出路径
        group_name: 合并统计中显示的名称

    Returns:
        int: 写入的行数
    """
    source_stats = OrderedDict()
    groups = []
    for path in sources:
        lines = read_lines(path)
        source_stats[str(path)] = len(lines)
        groups.append(lines)

    merged = merge_lines(groups)
    write_lines(dest, merged)

    log_list_merge(
        group_name or str(dest),
        input_count=sum(source_stats.values()),
        output_count=len(merged),
        source_stats=dict(source_stats),
    )
    return len(merged)


def concat_files(sources, dest):
    """
    按顺序拼接文件，不排序也不去重

    各数据源互相独立，跨源的重复行保留。

    Returns:
        int: 写入的行数
    """
    count = 0
    with open(dest, "w", encoding=ENCODING, errors=ERRORS, newline="\n") as out:
        for path in sources:
            for line in read_lines(path):
                out.write(line + "\n")
                count += 1
    logger.info(f"[+] Wrote {count:,} lines to {dest}")
    return count
