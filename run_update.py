#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
IP 过滤文件更新与生成脚本

功能：
1. 下载并合并 I-BlockList 黑名单
2. 生成并合并 GeoLite2 国家黑名单（如已配置）
3. 将两组拼接为最终的 IP 过滤文件
4. 安装 IP 过滤文件，并按配置原地压缩

使用方法：
    python3 run_update.py [--notify] [--keep-temp] [--config config.yaml]

定时任务示例（crontab）：
    # 每天凌晨2点运行
    0 2 * * * cd /path/to/ipfilter && python3 run_update.py --notify >> logs/update.log 2>&1
"""

import argparse
import bz2
import gzip
import os
import shutil
import sys
import tempfile
import time
import zipfile
from enum import Enum

from blocklists.combine.combine import concat_files
from blocklists.downloader import create_session
from blocklists.errors import IPFilterError
from blocklists.geolite2 import code as geolite2
from blocklists.iblocklist import code as iblocklist
from config_loader import DEFAULT_CONFIG_FILE, load_config
from logger_utils import add_file_handler, get_logger, log_separator, set_level
from notifier import check_notify_tool, send_notification

SCRIPT_TITLE = "IP Filter Updater & Generator"
FINAL_FILE = "ipfilter.p2p"
TEMP_PREFIX = "ipfilter."

logger = get_logger()


class PipelineState(Enum):
    INIT = 0
    FETCHING_IBL = 1
    FETCHING_GL2 = 2
    MERGING = 3
    INSTALLING = 4
    DONE = 5
    FAILED = -1


# =========================
# 安装
# =========================

def compress_file(path, compression):
    """
    原地压缩文件并删除原文件

    Returns:
        压缩后的文件路径（'none' 时即 path 本身）
    """
    if compression == "none":
        return path

    if compression == "gzip":
        dest = path + ".gz"
        with open(path, "rb") as f_in, gzip.open(dest, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out)
    elif compression == "bzip2":
        dest = path + ".bz2"
        with open(path, "rb") as f_in, bz2.open(dest, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out)
    elif compression == "zip":
        dest = os.path.splitext(path)[0] + ".zip"
        with zipfile.ZipFile(dest, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.write(path, arcname=os.path.basename(path))
    else:
        raise ValueError(f"Invalid compression type '{compression}'")

    os.remove(path)
    return dest


def install_file(src, dest, compression="none"):
    """复制最终文件到安装位置并压缩"""
    parent = os.path.dirname(os.path.abspath(dest))
    os.makedirs(parent, exist_ok=True)
    shutil.copyfile(src, dest)

    if compression != "none":
        logger.info("[+] Compressing installed file in-place...")
    return compress_file(dest, compression)


# =========================
# 流程
# =========================

class UpdatePipeline:
    def __init__(self, config, workdir, session=None):
        """
        Args:
            config: FilterConfig
            workdir: 临时工作目录
            session: requests.Session，不传时按 config.retry 创建
        """
        self.config = config
        self.workdir = workdir
        self.owns_session = session is None
        self.session = session if session is not None else create_session(config.retry)
        self.state = PipelineState.INIT

    def transition(self, state):
        """状态只能前进；任何状态都可以进入 FAILED"""
        if self.state in (PipelineState.DONE, PipelineState.FAILED):
            raise RuntimeError(f"Pipeline already finished ({self.state.name})")
        if state is not PipelineState.FAILED and state.value <= self.state.value:
            raise RuntimeError(f"Invalid transition {self.state.name} -> {state.name}")
        logger.debug(f"Pipeline state: {self.state.name} -> {state.name}")
        self.state = state

    def run(self):
        """
        执行全部步骤

        Returns:
            安装后的文件路径
        """
        try:
            self.transition(PipelineState.FETCHING_IBL)
            ibl_file = iblocklist.build_group(self.config, self.workdir, self.session)
            log_separator()

            if self.config.geolite2_enabled:
                self.transition(PipelineState.FETCHING_GL2)
            gl2_file = geolite2.build_group(self.config, self.workdir, self.session)
            log_separator()

            self.transition(PipelineState.MERGING)
            logger.info("[+] Merging I-BlockList and GeoLite2 blocklists...")
            final_file = os.path.join(self.workdir, FINAL_FILE)
            concat_files([ibl_file, gl2_file], final_file)

            self.transition(PipelineState.INSTALLING)
            logger.info("[+] Installing final IP filter file...")
            installed = install_file(final_file, self.config.install_path, self.config.compression)
            logger.info(f"[+] Installed: {installed}")

            self.transition(PipelineState.DONE)
            return installed
        except BaseException:
            if self.state not in (PipelineState.DONE, PipelineState.FAILED):
                self.transition(PipelineState.FAILED)
            # 关闭连接池，让仍在进行的下载尽快结束
            self.session.close()
            raise
        finally:
            if self.owns_session:
                self.session.close()


# =========================
# 命令行
# =========================

def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog=os.path.basename(sys.argv[0]) or "run_update.py",
        description=SCRIPT_TITLE,
    )
    parser.add_argument("-n", "--notify", action="store_true",
                        help="Send desktop notification to inform user about success/failure (useful for cron)")
    parser.add_argument("-k", "--keep-temp", action="store_true",
                        help="Do not remove temporary folder when done (useful for debugging)")
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_FILE,
                        help=f"Configuration file (default: {DEFAULT_CONFIG_FILE})")
    return parser.parse_args(argv)


def notify(args, kind, summary, body=""):
    if args.notify:
        send_notification(kind, SCRIPT_TITLE, summary, body)


def fail(args):
    logger.error("An error occurred, aborting.")
    notify(args, "error", "An error occurred while updating.", "Please check output for errors.")


def main(argv=None):
    """主函数，返回退出码"""
    args = parse_args(argv)

    logger.info(f"--==[ {SCRIPT_TITLE} ]==--")

    # 开始前先检查配置和依赖
    try:
        config = load_config(args.config)
        set_level(config.log_level)
        if config.log_file:
            add_file_handler(config.log_file)
        if args.notify:
            check_notify_tool()
    except (IPFilterError, ValueError, OSError) as e:
        logger.error(f"❌ {e}")
        logger.error("Please check configuration and dependencies.")
        return 1

    total_start = time.time()
    logger.info("[+] Creating temporary folder...")
    workdir = tempfile.mkdtemp(prefix=TEMP_PREFIX)

    status = 1
    try:
        pipeline = UpdatePipeline(config, workdir)
        pipeline.run()
        logger.info(f"✅ IP filter successfully updated. ({time.time() - total_start:.1f}s)")
        notify(args, "normal", "IP filter successfully updated.")
        status = 0
    except KeyboardInterrupt:
        logger.warning("⚠️  Interrupted by user")
        status = 130
    except (IPFilterError, OSError) as e:
        logger.error(f"❌ {e}")
        fail(args)
    except Exception as e:
        # 未预料的错误同样只输出一行汇总，不向外抛出
        logger.exception(f"❌ Unexpected error: {e}")
        fail(args)
    finally:
        if args.keep_temp:
            logger.info(f"Keeping temporary files in '{workdir}'.")
        else:
            logger.info("Removing temporary folder...")
            shutil.rmtree(workdir, ignore_errors=True)

    return status


if __name__ == "__main__":
    sys.exit(main())
