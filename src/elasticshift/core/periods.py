"""分区周期定义模块."""

from datetime import UTC, datetime, timedelta
from enum import Enum

from .constants import DateFormats


class PartitionPeriod(str, Enum):
    """时间分区周期."""

    DAILY = "daily"
    MONTHLY = "monthly"

    @property
    def date_format(self) -> str:
        """分区日期格式."""
        if self is PartitionPeriod.DAILY:
            return DateFormats.DAILY
        return DateFormats.MONTHLY

    def period_start(self, value: datetime) -> datetime:
        """返回 value 所在周期的起始时刻."""
        start = value.replace(hour=0, minute=0, second=0, microsecond=0)
        if self is PartitionPeriod.MONTHLY:
            start = start.replace(day=1)
        return start

    def next_period(self, value: datetime) -> datetime:
        """返回 value 所在周期的下一个周期起始时刻."""
        start = self.period_start(value)
        if self is PartitionPeriod.DAILY:
            return start + timedelta(days=1)
        if start.month == 12:
            return start.replace(year=start.year + 1, month=1)
        return start.replace(month=start.month + 1)

    def period_end(self, value: datetime) -> datetime:
        """返回 value 所在周期的最后一个时刻（精确到微秒）."""
        return self.next_period(value) - timedelta(microseconds=1)

    def format(self, value: datetime) -> str:
        return value.strftime(self.date_format)

    def parse(self, text: str) -> datetime | None:
        """按周期日期格式解析字符串，失败返回 None."""
        try:
            parsed = datetime.strptime(text, self.date_format)
        except ValueError:
            return None
        # strptime 允许单位数的月/日，这里要求严格的往返一致
        if parsed.strftime(self.date_format) != text:
            return None
        return parsed.replace(tzinfo=UTC)
