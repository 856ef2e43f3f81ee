#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
GeoLite2 国家黑名单

1. 下载并解压 GeoLite2 Country CSV 数据库
2. 建立国家索引（小写的国家名/大洲名 -> 记录）
3. 按请求的国家关联 blocks 表，把每个 CIDR 转换为带标签的范围行
4. 将各国家文件合并为一个分组文件
"""

import csv
import os
import zipfile
import zlib
from collections import defaultdict
from dataclasses import dataclass

from blocklists.combine.combine import count_lines, merge_files, version_sort_key, write_lines
from blocklists.downloader import download_file, mask_url
from blocklists.errors import (
    DatabaseError,
    InvalidCIDR,
    MalformedRecord,
    UnknownCountry,
    UnknownIPVersion,
)
from blocklists.ip_ranges import IPVersion
from blocklists.results import FetchResult
from blocklists.workers import run_collections
from logger_utils import get_logger
from logger_wrapper import log_collection

logger = get_logger()

# =========================
# 文件名（位于工作目录下）
# =========================
GL2_FIN1 = "geolite2-country-database.zip"
GL2_FIN2 = "geolite2-country-locations-en.csv"
GL2_FIN3 = "geolite2-country-blocks-{}.csv"
GL2_FOUT1 = "geolite2-{}.p2p"
GL2_FOUT2 = "geolite2-merged.p2p"

# locations 表结构
LOCATION_FIELDS = 7
LOCATION_GEONAME_ID = 0
LOCATION_CONTINENT_NAME = 3
LOCATION_COUNTRY_NAME = 5

# blocks 表结构（多余的列忽略）
BLOCK_NETWORK = 0
BLOCK_GEONAME_ID = 1

# 无法解码的字节保留为代理字符，按行检查后跳过
TABLE_ENCODING = "utf-8"
TABLE_ERRORS = "surrogateescape"


@dataclass(frozen=True)
class CountryRecord:
    geoname_id: str
    continent_name: str
    country_name: str

    @property
    def name(self):
        """国家名；大洲级条目没有国家名时用大洲名"""
        return self.country_name or self.continent_name

    @property
    def key(self):
        return self.name.lower()


# =========================
# 下载 / 解压
# =========================

@log_collection("GeoLite2")
def fetch_database(config, workdir, session):
    """
    下载数据库压缩包并解压其中的 CSV 表

    Returns:
        压缩包的 FetchResult（line_count 为所有解压出的表的总行数）
    """
    url = config.geolite2_url % config.geolite2_license
    archive = os.path.join(workdir, GL2_FIN1)

    logger.info(f"[+] Downloading GeoLite2 database from {mask_url(url)}...")
    download_file(session, url, archive, config.retry)

    logger.info("[+] Extracting GeoLite2 database...")
    tables = extract_database(archive, workdir)
    logger.info(f"[+] Extracted {len(tables)} GeoLite2 tables")
    return FetchResult("GeoLite2", archive, sum(count_lines(path) for path in tables))


def extract_database(archive, workdir):
    """
    将所有 .csv 成员解压到 workdir

    去掉目录部分并转为小写，例如
    'GeoLite2-Country-CSV_20240101/GeoLite2-Country-Locations-en.csv'
    变为 'geolite2-country-locations-en.csv'。

    Returns:
        解压出的文件路径列表
    """
    extracted = []
    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                if info.is_dir() or not info.filename.lower().endswith(".csv"):
                    continue
                name = os.path.basename(info.filename).lower()
                dest = os.path.join(workdir, name)
                with zf.open(info) as src, open(dest, "wb") as out:
                    while True:
                        chunk = src.read(64 * 1024)
                        if not chunk:
                            break
                        out.write(chunk)
                extracted.append(dest)
    except (zipfile.BadZipFile, zlib.error, EOFError) as e:
        raise DatabaseError(f"Invalid GeoLite2 archive '{archive}': {e}") from e

    logger.debug(f"Extracted tables: {[os.path.basename(p) for p in extracted]}")
    return extracted


def _table_path(workdir, name):
    path = os.path.join(workdir, name)
    if not os.path.exists(path):
        raise DatabaseError(f"GeoLite2 database has no table '{name}'")
    return path


def _read_table(path):
    """读取 CSV 表（不含标题行）"""
    try:
        with open(path, "r", encoding=TABLE_ENCODING, errors=TABLE_ERRORS, newline="") as f:
            reader = csv.reader(f)
            next(reader, None)
            return [row for row in reader]
    except csv.Error as e:
        raise DatabaseError(f"Unreadable GeoLite2 table '{os.path.basename(path)}': {e}") from e


def _check_text(row):
    """行内含有无法解码的字节时抛出 MalformedRecord"""
    for value in row:
        try:
            value.encode(TABLE_ENCODING)
        except UnicodeEncodeError:
            raise MalformedRecord(row, "not valid UTF-8") from None


# =========================
# 国家索引
# =========================

def read_locations(path):
    """读取 locations 表，不含标题行"""
    return _read_table(path)


def parse_location(row):
    if len(row) != LOCATION_FIELDS:
        raise MalformedRecord(row, f"expected {LOCATION_FIELDS} fields, got {len(row)}")
    _check_text(row)
    return CountryRecord(
        geoname_id=row[LOCATION_GEONAME_ID].strip(),
        continent_name=row[LOCATION_CONTINENT_NAME].strip(),
        country_name=row[LOCATION_COUNTRY_NAME].strip(),
    )


def build_country_index(rows):
    """
    建立国家索引

    Args:
        rows: locations 表的行（不含标题行）

    Returns:
        dict: 小写国家名（国家名为空时用大洲名）-> CountryRecord，
        名称重复时后出现的行生效
    """
    index = {}
    for row in rows:
        try:
            record = parse_location(row)
        except MalformedRecord as e:
            logger.warning(f"[!] Skipping invalid line: {e}")
            continue
        index[record.key] = record
    return index


def resolve_country(index, name):
    """不区分大小写查找"""
    record = index.get(name.strip().lower())
    if record is None:
        raise UnknownCountry(name)
    return record


def resolve_countries(names, index):
    """
    按顺序解析请求的国家

    未知国家告警后跳过；解析到同一条记录的名称（重复、大小写不同）只保留一次。
    """
    records = []
    seen = set()
    for name in names:
        try:
            record = resolve_country(index, name)
        except UnknownCountry as e:
            logger.warning(f"[!] Skipping invalid country '{e.country}' in setting geolite2.countries")
            continue
        if record.key in seen:
            logger.debug(f"Country '{name}' already requested, skipping duplicate")
            continue
        seen.add(record.key)
        records.append(record)
    return records


def resolve_versions(names):
    """按顺序解析请求的 IP 版本，未知版本告警后跳过"""
    versions = []
    for name in names:
        try:
            version = IPVersion.parse(name)
        except UnknownIPVersion as e:
            logger.warning(f"[!] Skipping invalid IP version '{e.version}' in setting geolite2.ip_versions")
            continue
        if version not in versions:
            versions.append(version)
    return versions


# =========================
# 国家 IP 段
# =========================

def read_blocks(path):
    """
    读取 blocks 表

    Returns:
        dict: geoname_id -> CIDR 列表（保持文件顺序）
    """
    blocks = defaultdict(list)
    for row in _read_table(path):
        if not row:
            continue
        try:
            if len(row) <= BLOCK_GEONAME_ID:
                raise MalformedRecord(row, "too few fields")
            _check_text(row)
        except MalformedRecord as e:
            logger.warning(f"[!] Skipping invalid line: {e}")
            continue
        geoname_id = row[BLOCK_GEONAME_ID].strip()
        if geoname_id:
            blocks[geoname_id].append(row[BLOCK_NETWORK].strip())
    return dict(blocks)


def sort_ranges(lines, version):
    """
    对一个（国家, 版本）的行去重并排序

    IPv4 用版本排序；IPv6 每组都是定长十六进制，字符串顺序即数值顺序。
    """
    unique = set(lines)
    if version is IPVersion.IPV4:
        return sorted(unique, key=version_sort_key)
    return sorted(unique)


def format_range(label, version, start, end):
    return f"{label} {version.label}:{start}-{end}"


def generate_country_lines(record, versions, blocks_by_version):
    """
    生成一个国家的范围行

    Args:
        record: CountryRecord
        versions: IPVersion 列表，即输出顺序
        blocks_by_version: {IPVersion: {geoname_id: [cidr, ...]}}

    Returns:
        '<国家> <IPvX>:<起始>-<结束>' 行的列表
    """
    lines = []
    for version in versions:
        cidrs = blocks_by_version.get(version, {}).get(record.geoname_id, [])
        version_lines = []
        for cidr in cidrs:
            try:
                start, end = version.to_range(cidr)
            except InvalidCIDR as e:
                logger.warning(f"[!] Skipping {record.name} {version.label} block: {e}")
                continue
            version_lines.append(format_range(record.name, version, start, end))
        lines.extend(sort_ranges(version_lines, version))
    return lines


def country_file(workdir, record):
    return os.path.join(workdir, GL2_FOUT1.format(record.key))


def write_country_file(record, versions, blocks_by_version, workdir):
    """写出一个国家的黑名单（可以为空）"""
    logger.info(f"Generating GeoLite2 blocklist '{record.name}'...")
    lines = generate_country_lines(record, versions, blocks_by_version)
    dest = country_file(workdir, record)
    write_lines(dest, lines)
    return FetchResult(record.name, dest, len(lines))


def generate_countries(countries, versions, index, blocks_by_version, workdir, max_workers=4):
    """
    为每个请求的国家生成一个黑名单文件

    索引和 blocks 表只读，每个线程只写自己的文件。

    Args:
        countries: 请求的国家名（配置中的原始值）
        versions: IPVersion 列表
        index: build_country_index 返回的索引
        blocks_by_version: {IPVersion: {geoname_id: [cidr, ...]}}
        workdir: 输出目录
        max_workers: 线程数

    Returns:
        FetchResult 列表，顺序与请求相同
    """
    records = resolve_countries(countries, index)
    jobs = [
        (record.name, write_country_file, (record, versions, blocks_by_version, workdir))
        for record in records
    ]
    return run_collections(jobs, max_workers)


# =========================
# 分组
# =========================

def build_group_from_tables(config, workdir):
    """
    用已解压的表生成并合并各国家黑名单

    Returns:
        分组文件路径
    """
    dest = os.path.join(workdir, GL2_FOUT2)

    logger.info("[+] Parsing GeoLite2 countries...")
    index = build_country_index(read_locations(_table_path(workdir, GL2_FIN2)))
    logger.info(f"[+] Indexed {len(index):,} countries and continents")

    versions = resolve_versions(config.geolite2_ip_versions)
    blocks_by_version = {}
    for version in versions:
        table = _table_path(workdir, GL2_FIN3.format(version.label.lower()))
        blocks_by_version[version] = read_blocks(table)

    logger.info("[+] Generating GeoLite2 blocklists...")
    results = generate_countries(
        config.geolite2_countries, versions, index, blocks_by_version, workdir, config.max_workers
    )

    logger.info("[+] Merging GeoLite2 blocklists...")
    merge_files([r.path for r in results], dest, group_name="GeoLite2")
    return dest


def build_group(config, workdir, session):
    """
    将所有请求的国家汇总到 GeoLite2 分组文件

    Returns:
        分组文件路径（未配置 GeoLite2 时为空文件）
    """
    if not config.geolite2_enabled:
        dest = os.path.join(workdir, GL2_FOUT2)
        logger.info("[-] GeoLite2 license key or country list not configured, skipping")
        open(dest, "w").close()
        return dest

    fetch_database(config, workdir, session)
    return build_group_from_tables(config, workdir)
