#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
统一日志工具模块

所有模块共用同一个 'IPFILTER' 日志记录器。始终输出到控制台，
配置中指定了日志文件时再添加文件 handler。
"""

import os
import logging

LOGGER_NAME = "IPFILTER"

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# 全局logger
_logger = None


def get_logger(name=LOGGER_NAME):
    """获取全局日志记录器，首次调用时创建控制台handler"""
    global _logger

    if _logger is not None:
        return _logger

    _logger = logging.getLogger(name)
    _logger.setLevel(logging.INFO)

    # 避免重复添加handler
    if _logger.handlers:
        return _logger

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    _logger.addHandler(console_handler)

    return _logger


def set_level(level):
    """按名称（'DEBUG'、'info' 等）或数值设置日志级别"""
    logger = get_logger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {level}")
    logger.setLevel(level)


def add_file_handler(log_file):
    """
    同时把日志写入文件

    Args:
        log_file: 日志文件路径，目录不存在时自动创建

    Returns:
        FileHandler（同一文件已有 handler 时直接复用）
    """
    logger = get_logger()
    log_file = os.path.abspath(log_file)

    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == log_file:
            return handler

    os.makedirs(os.path.dirname(log_file), exist_ok=True)
    file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)
    return file_handler


def log_list_collection(source_name, status, record_count=0, error_msg=""):
    """
    记录一个黑名单的采集情况

    Args:
        source_name: 黑名单或国家名称
        status: 状态（success/failed）
        record_count: 采集到的行数
        error_msg: 错误信息（如果有）
    """
    logger = get_logger()

    if status == "success":
        logger.info(f"[{source_name}] collected {record_count:,} lines")
    else:
        logger.error(f"[{source_name}] collection failed - {error_msg}")


def log_list_merge(group_name, input_count, output_count, source_stats):
    """
    记录合并统计

    Args:
        group_name: 合并分组名称（例如 'I-BlockList'）
        input_count: 从所有来源读取的行数
        output_count: 排序去重后写入的行数
        source_stats: {来源: 行数}
    """
    logger = get_logger()

    logger.info("=" * 60)
    logger.info(f"Merge statistics: {group_name}")
    logger.info("-" * 60)
    logger.info(f"Input lines: {input_count:,}")
    logger.info(f"Output lines: {output_count:,}")
    logger.info(f"Sources: {len(source_stats)}")
    if source_stats:
        logger.info("-" * 60)
        for source, count in sorted(source_stats.items(), key=lambda x: x[1], reverse=True):
            logger.info(f"  {source}: {count:,}")
    logger.info("=" * 60)


def log_separator():
    logger = get_logger()
    logger.info("")
