"""elasticshift 常量定义模块."""

from datetime import UTC, datetime, timedelta


class IndexNaming:
    """物理索引命名相关常量.

    物理索引命名约定:
        - 版本化索引: ``{name}-v{version}``
        - 时间分区索引: ``{name}-v{version}-{yyyy.MM.dd|yyyy.MM}``
        - 分区日期别名: ``{name}-{yyyy.MM.dd|yyyy.MM}``
        - 错误影子索引: ``{index}-error``
    """

    VERSION_SEPARATOR = "-v"
    PART_SEPARATOR = "-"
    ERROR_INDEX_SUFFIX = "-error"

    # 无法解析版本号时返回的哨兵值
    UNKNOWN_VERSION = -1


class DateFormats:
    """分区日期格式常量."""

    DAILY = "%Y.%m.%d"
    MONTHLY = "%Y.%m"


# "最大日期"哨兵值: 表示索引未按时间分区，或者永不过期
MAX_DATE = datetime.max.replace(tzinfo=UTC)

MIN_DATE = datetime.min.replace(tzinfo=UTC)


class LockKeys:
    """分布式锁键名常量."""

    MAINTAIN_INDEXES = "es-maintain-indexes"
    REINDEX_PREFIX = "reindex"
    ENQUEUE_REINDEX_PREFIX = "enqueue-reindex"


class Defaults:
    """默认参数."""

    # 第二遍扫描相对第一遍开始时间回退的时钟偏差容忍
    SECOND_PASS_SKEW = timedelta(seconds=1)
    ENQUEUE_THROTTLE = timedelta(minutes=15)
    REINDEX_LOCK_TTL = timedelta(minutes=20)
    MAINTAIN_LOCK_TTL = timedelta(minutes=30)
    PAGE_SIZE = 500
    KEEP_ALIVE = "5m"
