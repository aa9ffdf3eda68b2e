"""重建索引数据模型定义模块."""

import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from ..core.constants import Defaults, LockKeys
from .exceptions import ReindexConfigError


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class ReindexStage(str, Enum):
    """重建索引状态机阶段.

    FIRST_PASS -> ALIAS_CUTOVER -> SECOND_PASS -> RECONCILE_DELETE -> DONE，
    每个阶段都可以在崩溃后从检查点重新进入。
    """

    FIRST_PASS = "first_pass"
    ALIAS_CUTOVER = "alias_cutover"
    SECOND_PASS = "second_pass"
    RECONCILE_DELETE = "reconcile_delete"
    DONE = "done"


@dataclass(frozen=True)
class ReindexTask:
    """一次迁移任务.

    任务标识为 (source_index, dest_index, alias)。重复执行同一任务是安全的：
    文档按外部版本写入，已迁移的数据不会回退。

    Attributes:
        source_index: 源物理索引
        dest_index: 目标物理索引
        alias: 主别名，切换时若源索引上没有也会添加到目标索引
        script: 组合后的 Painless 迁移脚本（可选）
        timestamp_field: 时间戳字段，用于限定扫描窗口（可选）
        type_field: 文档类型字段，用于查找父文档路径（可选）
        parent_path_by_type: 文档类型到父文档 ID 路径的映射
        delete_source_on_success: 迁移成功后是否删除源索引
        window_start_utc: 第一遍扫描的起始时间（可选）
        checkpoint_expires_at: 检查点的最长保留时间（可选，分区任务为分区过期时间）
    """

    source_index: str
    dest_index: str
    alias: str | None = None
    script: str | None = None
    timestamp_field: str | None = None
    type_field: str | None = None
    parent_path_by_type: dict[str, str] = field(default_factory=dict)
    delete_source_on_success: bool = True
    window_start_utc: datetime | None = None
    checkpoint_expires_at: datetime | None = None

    @property
    def identity(self) -> tuple[str, str, str | None]:
        return (self.source_index, self.dest_index, self.alias)

    @property
    def lock_suffix(self) -> str:
        """用于构造锁键的任务标识，格式为 ``{alias}:{source}:{dest}``."""
        return f"{self.alias or ''}:{self.source_index}:{self.dest_index}"

    @property
    def lock_key(self) -> str:
        """执行期间持有的锁键."""
        return f"{LockKeys.REINDEX_PREFIX}:{self.lock_suffix}"

    @property
    def enqueue_lock_key(self) -> str:
        """入队限流使用的锁键."""
        return f"{LockKeys.ENQUEUE_REINDEX_PREFIX}:{self.lock_suffix}"

    def task_hash(self) -> str:
        """任务的确定性哈希，跨进程稳定，用作检查点键."""
        payload = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["window_start_utc"] = _to_iso(self.window_start_utc)
        data["checkpoint_expires_at"] = _to_iso(self.checkpoint_expires_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReindexTask":
        return cls(
            source_index=data["source_index"],
            dest_index=data["dest_index"],
            alias=data.get("alias"),
            script=data.get("script"),
            timestamp_field=data.get("timestamp_field"),
            type_field=data.get("type_field"),
            parent_path_by_type=dict(data.get("parent_path_by_type") or {}),
            delete_source_on_success=data.get("delete_source_on_success", True),
            window_start_utc=_from_iso(data.get("window_start_utc")),
            checkpoint_expires_at=_from_iso(data.get("checkpoint_expires_at")),
        )


@dataclass
class ReindexCheckpoint:
    """一个任务的可恢复进度.

    Attributes:
        stage: 当前阶段
        cursor: 当前遍历的游标令牌（None 表示本遍尚未开始）
        completed: 本遍已完成的文档数
        total: 本遍的文档总数
        started_at: 第一遍扫描开始时间，第二遍扫描窗口以此为基准
    """

    stage: ReindexStage = ReindexStage.FIRST_PASS
    cursor: dict[str, Any] | None = None
    completed: int = 0
    total: int = 0
    started_at: datetime | None = None

    def reset_pass(self) -> None:
        self.cursor = None
        self.completed = 0
        self.total = 0

    def advance(self, stage: ReindexStage) -> None:
        self.stage = stage
        self.reset_pass()

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "cursor": self.cursor,
            "completed": self.completed,
            "total": self.total,
            "started_at": _to_iso(self.started_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReindexCheckpoint":
        return cls(
            stage=ReindexStage(data.get("stage", ReindexStage.FIRST_PASS.value)),
            cursor=data.get("cursor"),
            completed=int(data.get("completed", 0)),
            total=int(data.get("total", 0)),
            started_at=_from_iso(data.get("started_at")),
        )


@dataclass
class PassResult:
    """一遍扫描的统计结果."""

    total: int = 0
    completed: int = 0
    failures: int = 0
    restarts: int = 0


@dataclass
class ReindexResult:
    """重建索引结果.

    Attributes:
        task: 执行的任务
        first_pass: 第一遍统计（从后续阶段恢复时为空）
        second_pass: 第二遍统计
        source_count: 对账时源索引文档数
        dest_count: 对账时目标索引文档数
        source_deleted: 是否删除了源索引
    """

    task: ReindexTask
    first_pass: PassResult = field(default_factory=PassResult)
    second_pass: PassResult = field(default_factory=PassResult)
    source_count: int | None = None
    dest_count: int | None = None
    source_deleted: bool = False

    @property
    def failures(self) -> int:
        return self.first_pass.failures + self.second_pass.failures


def _default_error_index_mappings() -> dict[str, Any]:
    return {
        "dynamic": False,
        "properties": {
            "type": {"type": "keyword"},
            "parent_id": {"type": "keyword"},
            "source_index": {"type": "keyword"},
            "failed_at": {"type": "date"},
            "content": {"type": "text", "index": False},
            "error": {"type": "text", "index": False},
        },
    }


@dataclass
class ReindexConfig:
    """重建索引配置.

    Attributes:
        page_size: 每批读取的文档数，默认 500
        keep_alive: 游标保活时间，默认 "5m"
        second_pass_skew: 第二遍扫描相对第一遍开始时间的回退量，默认 1 秒
        max_cursor_restarts: 单遍扫描因游标失效而重启的最大次数，默认 3
        error_index_mappings: 错误影子索引的映射

    Raises:
        ReindexConfigError: 参数不合法时抛出

    Examples:
        >>> config = ReindexConfig(page_size=1000, second_pass_skew=timedelta(seconds=5))
    """

    page_size: int = Defaults.PAGE_SIZE
    keep_alive: str = Defaults.KEEP_ALIVE
    second_pass_skew: timedelta = Defaults.SECOND_PASS_SKEW
    max_cursor_restarts: int = 3
    error_index_mappings: dict[str, Any] = field(
        default_factory=_default_error_index_mappings
    )

    def __post_init__(self) -> None:
        """校验重建索引配置参数合法性."""
        if self.page_size < 1:
            raise ReindexConfigError(f"page_size 必须 >= 1，当前值: {self.page_size}")
        if self.second_pass_skew < timedelta(0):
            raise ReindexConfigError(
                f"second_pass_skew 不能为负数，当前值: {self.second_pass_skew}"
            )
        if self.max_cursor_restarts < 0:
            raise ReindexConfigError(
                f"max_cursor_restarts 必须 >= 0，当前值: {self.max_cursor_restarts}"
            )
