#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
桌面通知

Linux/FreeBSD 使用 notify-send，macOS 使用 osascript，Windows 和 WSL 上的 Linux
使用 powershell.exe。通知发送失败只记录日志，不影响运行结果。
"""

import os
import platform
import shlex
import shutil
import subprocess
import sys

from blocklists.errors import ConfigError, ToolUnavailable
from logger_utils import get_logger

logger = get_logger()

NOTIFY_TIMEOUT = 30
X11_SOCKET_DIR = "/tmp/.X11-unix"


def is_linux_on_wsl():
    return sys.platform.startswith("linux") and "microsoft" in platform.uname().release.lower()


def notify_command():
    """返回当前平台使用的通知命令"""
    if sys.platform.startswith("linux"):
        # 注意：WSL 上必须是 'powershell.exe'，'powershell' 不可用
        return "powershell.exe" if is_linux_on_wsl() else "notify-send"
    if sys.platform.startswith("freebsd"):
        return "notify-send"
    if sys.platform == "darwin":
        return "osascript"
    if sys.platform in ("win32", "cygwin", "msys"):
        return "powershell.exe"
    raise ConfigError(f"Option '-n/--notify' not supported on operating system type '{sys.platform}'")


def check_notify_tool():
    """无法发送通知时在运行开始前报错"""
    command = notify_command()
    if shutil.which(command) is None:
        raise ToolUnavailable(command)
    return command


def _ps_quote(text):
    return text.replace("'", "''")


def build_command(kind, app_name, summary, body=""):
    """
    生成通知命令行

    Args:
        kind: 'normal' 或 'error'
        app_name: 应用名称（标题）
        summary: 摘要
        body: 正文（可选）
    """
    command = notify_command()

    if command == "notify-send":
        urgency = "critical" if kind == "error" else "normal"
        return ["notify-send", f"--urgency={urgency}", f"--app-name={app_name}", summary, body]

    if command == "osascript":
        script = 'display notification "{}" with title "{}" subtitle "{}"'.format(
            body.replace('"', '\\"'), app_name.replace('"', '\\"'), summary.replace('"', '\\"'))
        return ["osascript", "-e", script]

    icon = "error" if kind == "error" else "information"
    message = f"{summary} {body}" if body else summary
    script = (
        "[reflection.assembly]::loadwithpartialname('System.Windows.Forms'); "
        "[reflection.assembly]::loadwithpartialname('System.Drawing'); "
        "$notify = new-object system.windows.forms.notifyicon; "
        f"$notify.icon = [System.Drawing.SystemIcons]::{icon}; "
        "$notify.visible = $true; "
        f"$notify.showballoontip(10, '{_ps_quote(app_name)}', '{_ps_quote(message)}', "
        "[system.windows.forms.tooltipicon]::None)"
    )
    return ["powershell.exe", "-c", script]


# =========================
# X11 显示
# =========================

def find_display():
    """从 /tmp/.X11-unix 中的套接字找出第一个 X 显示，例如 ':0'"""
    try:
        sockets = os.listdir(X11_SOCKET_DIR)
    except OSError:
        return None
    numbers = sorted(int(name[1:]) for name in sockets if name.startswith("X") and name[1:].isdigit())
    return f":{numbers[0]}" if numbers else None


def find_display_user(display):
    """根据 'who' 的输出找出登录到该显示的用户"""
    try:
        result = subprocess.run(["who"], capture_output=True, text=True, timeout=NOTIFY_TIMEOUT)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Unable to run 'who': {e}")
        return None
    for line in result.stdout.splitlines():
        if f"({display})" in line:
            return line.split()[0]
    return None


def _is_root():
    return hasattr(os, "geteuid") and os.geteuid() == 0


def prepare_notify_send(cmd, env):
    """
    为 notify-send 补全显示信息

    root 运行时（例如 cron）通过 su 以桌面用户身份发送；
    否则 DISPLAY 未设置时使用找到的第一个显示。

    Returns:
        (命令行, 环境变量)
    """
    display = env.get("DISPLAY") or find_display() or ":0"

    if _is_root():
        user = find_display_user(display)
        if user:
            inner = shlex.join(["env", f"DISPLAY={display}"] + cmd)
            return ["su", user, "-c", inner], env

    if not env.get("DISPLAY"):
        env["DISPLAY"] = display
    return cmd, env


def send_notification(kind, app_name, summary, body=""):
    """发送桌面通知，成功时返回 True"""
    try:
        cmd = build_command(kind, app_name, summary, body)
    except ConfigError as e:
        logger.error(f"Unable to send notification: {e}")
        return False

    env = os.environ.copy()
    if cmd[0] == "notify-send":
        cmd, env = prepare_notify_send(cmd, env)

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, env=env, timeout=NOTIFY_TIMEOUT)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.error(f"Unable to send notification: {e}")
        return False

    if result.returncode != 0:
        logger.error(f"Unable to send notification: '{cmd[0]}' exited with {result.returncode}: "
                     f"{result.stderr.strip()}")
        return False
    return True
