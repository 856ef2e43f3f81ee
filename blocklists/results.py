from dataclasses import dataclass


@dataclass(frozen=True)
class FetchResult:
    """一个采集到的分组文件"""
    name: str
    path: str
    line_count: int = 0
