#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
并行采集工具

用线程池并行执行多个采集步骤，按提交顺序返回结果。
任意一个步骤失败（或用户中断）后，尚未开始的步骤不再执行，
线程池不等待正在进行的步骤，第一个错误会被重新抛出。
"""

import threading
from concurrent.futures import ThreadPoolExecutor

from logger_wrapper import wrap_collection


class _Skipped(Exception):
    """前面的步骤已失败，本步骤未执行"""


def run_collections(jobs, max_workers=4):
    """
    并行执行采集步骤

    Args:
        jobs: [(名称, 函数, 参数元组), ...]
        max_workers: 线程数上限

    Returns:
        list: 各步骤的返回值，顺序与 jobs 相同
    """
    jobs = list(jobs)
    if not jobs:
        return []

    stop = threading.Event()
    failures = []

    def run(name, func, args):
        if stop.is_set():
            raise _Skipped(name)
        try:
            return wrap_collection(name, func, *args)
        except BaseException as e:
            # 先记录错误再置位，保证 _Skipped 出现时 failures 非空
            failures.append(e)
            stop.set()
            raise

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(jobs))))
    futures = [executor.submit(run, name, func, args) for name, func, args in jobs]
    try:
        results = [future.result() for future in futures]
    except BaseException as e:
        stop.set()
        executor.shutdown(wait=False, cancel_futures=True)
        if isinstance(e, _Skipped) and failures:
            raise failures[0] from None
        raise

    executor.shutdown()
    return results
