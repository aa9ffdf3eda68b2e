"""
elasticshift 工具函数模块

提供物理索引命名、版本/日期解析以及日期运算相关的纯函数。
"""

import calendar
from datetime import UTC, datetime, timedelta
from typing import Any

from .constants import MAX_DATE, MIN_DATE, IndexNaming
from .periods import PartitionPeriod


def ensure_utc(value: datetime) -> datetime:
    """将时间统一为带 UTC 时区的 datetime.

    无时区信息的时间按 UTC 处理。
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


def safe_add(value: datetime, delta: timedelta) -> datetime:
    """时间加法，溢出时饱和到 MAX_DATE / MIN_DATE."""
    try:
        return value + delta
    except OverflowError:
        return MAX_DATE if delta > timedelta(0) else MIN_DATE


def safe_subtract(value: datetime, delta: timedelta) -> datetime:
    """时间减法，溢出时饱和到 MIN_DATE / MAX_DATE."""
    return safe_add(value, -delta)


def add_months(value: datetime, months: int) -> datetime:
    """按日历月加减，日期超出目标月天数时取该月最后一天."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def versioned_name(name: str, version: int) -> str:
    """生成版本化物理索引名称.

    示例:
        >>> versioned_name("employees", 2)
        'employees-v2'
    """
    return f"{name}{IndexNaming.VERSION_SEPARATOR}{version}"


def partitioned_name(
    name: str, version: int, date: datetime, period: PartitionPeriod
) -> str:
    """生成时间分区物理索引名称.

    示例:
        >>> partitioned_name("logs", 1, datetime(2024, 1, 5), PartitionPeriod.DAILY)
        'logs-v1-2024.01.05'
    """
    return (
        f"{versioned_name(name, version)}{IndexNaming.PART_SEPARATOR}"
        f"{period.format(date)}"
    )


def date_alias_name(name: str, date: datetime, period: PartitionPeriod) -> str:
    """生成分区日期别名，例如 ``logs-2024.01.05``."""
    return f"{name}{IndexNaming.PART_SEPARATOR}{period.format(date)}"


def error_index_name(index_name: str) -> str:
    """生成错误影子索引名称."""
    return f"{index_name}{IndexNaming.ERROR_INDEX_SUFFIX}"


def parse_index_version(name: str, index_name: str | None) -> int:
    """从物理索引名称中解析版本号.

    取 ``{name}-v`` 之后到下一个 ``-`` （或字符串结尾）之间的部分。

    Args:
        name: 逻辑索引名称
        index_name: 物理索引名称

    Returns:
        版本号，无法解析时返回 -1
    """
    prefix = f"{name}{IndexNaming.VERSION_SEPARATOR}"
    if not index_name or not index_name.startswith(prefix):
        return IndexNaming.UNKNOWN_VERSION

    remainder = index_name[len(prefix) :]
    separator = remainder.find(IndexNaming.PART_SEPARATOR)
    if separator > 0:
        remainder = remainder[:separator]

    if not remainder.isdigit():
        return IndexNaming.UNKNOWN_VERSION
    return int(remainder)


def parse_partition_date(
    name: str, index_name: str | None, period: PartitionPeriod
) -> datetime:
    """从物理索引名称中解析分区日期.

    Returns:
        分区日期（UTC），无日期后缀或无法解析时返回 MAX_DATE
    """
    version = parse_index_version(name, index_name)
    if version < 0 or not index_name:
        return MAX_DATE

    prefix = f"{versioned_name(name, version)}{IndexNaming.PART_SEPARATOR}"
    if len(index_name) <= len(prefix):
        return MAX_DATE

    parsed = period.parse(index_name[len(prefix) :])
    return parsed if parsed is not None else MAX_DATE


def get_value_by_path(source: dict[str, Any], path: str) -> Any:
    """按点号路径读取嵌套字段值，任一层缺失时返回 None.

    示例:
        >>> get_value_by_path({"a": {"b": 1}}, "a.b")
        1
    """
    current: Any = source
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current
