"""核心模块导出."""

from elasticshift.core.constants import (
    MAX_DATE,
    MIN_DATE,
    DateFormats,
    Defaults,
    IndexNaming,
    LockKeys,
)
from elasticshift.core.periods import PartitionPeriod
from elasticshift.core.utils import (
    add_months,
    date_alias_name,
    ensure_utc,
    error_index_name,
    get_value_by_path,
    parse_index_version,
    parse_partition_date,
    partitioned_name,
    safe_add,
    safe_subtract,
    utc_now,
    versioned_name,
)

__all__ = [
    "MAX_DATE",
    "MIN_DATE",
    "DateFormats",
    "Defaults",
    "IndexNaming",
    "LockKeys",
    "PartitionPeriod",
    "add_months",
    "date_alias_name",
    "ensure_utc",
    "error_index_name",
    "get_value_by_path",
    "parse_index_version",
    "parse_partition_date",
    "partitioned_name",
    "safe_add",
    "safe_subtract",
    "utc_now",
    "versioned_name",
]
