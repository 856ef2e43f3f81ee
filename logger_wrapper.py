#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
采集步骤的日志包装器

采集步骤返回 FetchResult，成功时记录行数，失败时记录错误信息。
失败会被重新抛出，由调用方决定是否继续运行。
"""

import functools

from logger_utils import log_list_collection


def wrap_collection(source_name, func, *args, **kwargs):
    """
    执行一个采集步骤并记录结果

    使用方法:
        result = wrap_collection("level1", fetch_list, source, workdir, session)

    Args:
        source_name: 日志中显示的名称
        func: 采集函数，返回带有 line_count 的对象

    Returns:
        func 的返回值
    """
    try:
        result = func(*args, **kwargs)
    except Exception as e:
        log_list_collection(source_name, "failed", 0, str(e))
        raise

    log_list_collection(source_name, "success", getattr(result, "line_count", 0) or 0)
    return result


def log_collection(source_name):
    """
    wrap_collection 的装饰器版本

    使用方法:
        @log_collection("GeoLite2")
        def fetch_database(...):
            ...
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return wrap_collection(source_name, func, *args, **kwargs)
        return wrapper
    return decorator
