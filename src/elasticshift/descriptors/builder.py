"""索引配置构建器模块."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from ..core.periods import PartitionPeriod
from ..index_manager.tool import validate_index_name
from .exceptions import IndexConfigError
from .models import (
    DocumentCapabilities,
    IndexConfig,
    MigrationScript,
    PartitioningConfig,
    TieredAlias,
    VersioningConfig,
)
from .scripts import remove_field_script, rename_field_script

logger = logging.getLogger(__name__)


class IndexConfigBuilder:
    """
    逻辑索引配置构建器.

    注册阶段通过链式调用完成，build() 返回不可变的 IndexConfig：
    - 版本号与迁移脚本
    - 按日/按月分区、最大保留时间与分级别名
    - 文档能力（时间戳字段、类型字段、父文档路径）

    使用示例:
        config = (
            IndexConfigBuilder("employees")
            .mappings({"properties": {"name": {"type": "keyword"}}})
            .version(2)
            .rename_field(2, "name", "full_name")
            .daily(max_index_age=timedelta(days=90))
            .add_tiered_alias("employees-last7days", timedelta(days=7))
            .timestamp_field("created_at")
            .build()
        )
    """

    def __init__(self, name: str):
        """
        初始化构建器.

        Args:
            name: 逻辑索引名称，同时作为主别名
        """
        self._name = name
        self._mappings: dict[str, Any] = {}
        self._settings: dict[str, Any] = {}
        self._version: int | None = None
        self._scripts: list[MigrationScript] = []
        self._discard_old_on_reindex = True
        self._period: PartitionPeriod | None = None
        self._max_index_age: timedelta | None = None
        self._tiered_aliases: list[TieredAlias] = []
        self._discard_expired = True
        self._timestamp_field: str | None = None
        self._type_field: str | None = None
        self._parent_paths: dict[str, str] = {}

    def mappings(self, mappings: dict[str, Any]) -> IndexConfigBuilder:
        """设置索引映射."""
        self._mappings = dict(mappings)
        return self

    def settings(self, settings: dict[str, Any]) -> IndexConfigBuilder:
        """设置索引设置."""
        self._settings = dict(settings)
        return self

    def version(self, version: int) -> IndexConfigBuilder:
        """
        声明索引版本，启用版本化能力.

        Args:
            version: 版本号，最小为 1

        Returns:
            self，支持链式调用
        """
        self._version = version
        return self

    def add_migration_script(
        self, version: int, script: str, doc_type: str | None = None
    ) -> IndexConfigBuilder:
        """
        注册迁移脚本.

        Args:
            version: 脚本对应的目标版本
            script: Painless 脚本文本
            doc_type: 仅对该类型的文档执行（需要配置类型字段）

        Returns:
            self，支持链式调用
        """
        if not script:
            raise IndexConfigError(f"版本 {version} 的迁移脚本不能为空")
        self._scripts.append(MigrationScript(version, script, doc_type))
        return self

    def rename_field(
        self,
        version: int,
        original_name: str,
        current_name: str,
        doc_type: str | None = None,
    ) -> IndexConfigBuilder:
        """注册重命名字段的迁移脚本."""
        return self.add_migration_script(
            version, rename_field_script(original_name, current_name), doc_type
        )

    def remove_field(
        self, version: int, field_name: str, doc_type: str | None = None
    ) -> IndexConfigBuilder:
        """注册删除字段的迁移脚本."""
        return self.add_migration_script(
            version, remove_field_script(field_name), doc_type
        )

    def discard_old_on_reindex(self, discard: bool = True) -> IndexConfigBuilder:
        self._discard_old_on_reindex = discard
        return self

    def daily(self, max_index_age: timedelta | None = None) -> IndexConfigBuilder:
        """按日分区，隐含启用版本化."""
        return self._partitioned(PartitionPeriod.DAILY, max_index_age)

    def monthly(self, max_index_age: timedelta | None = None) -> IndexConfigBuilder:
        """按月分区，隐含启用版本化."""
        return self._partitioned(PartitionPeriod.MONTHLY, max_index_age)

    def _partitioned(
        self, period: PartitionPeriod, max_index_age: timedelta | None
    ) -> IndexConfigBuilder:
        self._period = period
        self._max_index_age = max_index_age
        return self

    def add_tiered_alias(
        self, name: str, max_age: timedelta | None = None
    ) -> IndexConfigBuilder:
        """
        添加分级别名.

        Args:
            name: 别名名称
            max_age: 保留窗口，分区周期结束时间早于 ``今天 - max_age`` 时不再挂载

        Returns:
            self，支持链式调用
        """
        self._tiered_aliases.append(TieredAlias(name, max_age))
        return self

    def discard_expired(self, discard: bool = True) -> IndexConfigBuilder:
        self._discard_expired = discard
        return self

    def timestamp_field(self, field_name: str) -> IndexConfigBuilder:
        self._timestamp_field = field_name
        return self

    def type_field(self, field_name: str) -> IndexConfigBuilder:
        self._type_field = field_name
        return self

    def parent_path(self, doc_type: str, path: str) -> IndexConfigBuilder:
        """声明某类型文档的父文档 ID 所在的点号路径."""
        self._parent_paths[doc_type] = path
        return self

    def _validate(self) -> None:
        if not validate_index_name(self._name) or self._name != self._name.lower():
            raise IndexConfigError(f"索引名称 '{self._name}' 不符合 Elasticsearch 规范")

        versioned = self._version is not None or self._period is not None
        version = self._version if self._version is not None else 1
        if version < 1:
            raise IndexConfigError(f"索引版本必须 >= 1，当前值: {version}")

        if self._scripts and not versioned:
            raise IndexConfigError("只有版本化索引才能注册迁移脚本")
        for script in self._scripts:
            if script.version < 2 or script.version > version:
                raise IndexConfigError(
                    f"迁移脚本版本 {script.version} 超出范围 [2, {version}]"
                )
            if script.doc_type and not self._type_field:
                raise IndexConfigError(
                    f"版本 {script.version} 的迁移脚本限定了文档类型，但未配置类型字段"
                )

        if self._tiered_aliases and self._period is None:
            raise IndexConfigError("只有时间分区索引才能配置分级别名")
        if self._max_index_age is not None and self._max_index_age <= timedelta(0):
            raise IndexConfigError(f"max_index_age 必须大于 0，当前值: {self._max_index_age}")

        names = [alias.name for alias in self._tiered_aliases]
        if self._name in names or len(set(names)) != len(names):
            raise IndexConfigError(f"分级别名重复: {names}")
        for alias in self._tiered_aliases:
            if alias.max_age is not None and alias.max_age < timedelta(0):
                raise IndexConfigError(f"分级别名 '{alias.name}' 的 max_age 不能为负数")

        if self._parent_paths and not self._type_field:
            raise IndexConfigError("配置父文档路径时必须同时配置类型字段")

    def build(self) -> IndexConfig:
        """
        校验并构建不可变的索引配置.

        Returns:
            IndexConfig

        Raises:
            IndexConfigError: 配置不合法时抛出
        """
        self._validate()

        versioning = None
        if self._version is not None or self._period is not None:
            versioning = VersioningConfig(
                version=self._version if self._version is not None else 1,
                migration_scripts=tuple(self._scripts),
                discard_old_on_reindex=self._discard_old_on_reindex,
            )

        partitioning = None
        if self._period is not None:
            partitioning = PartitioningConfig(
                period=self._period,
                max_index_age=self._max_index_age,
                tiered_aliases=tuple(self._tiered_aliases),
                discard_expired=self._discard_expired,
            )

        config = IndexConfig(
            name=self._name,
            mappings=dict(self._mappings),
            settings=dict(self._settings),
            versioning=versioning,
            partitioning=partitioning,
            document=DocumentCapabilities(
                timestamp_field=self._timestamp_field,
                type_field=self._type_field,
                parent_path_by_type=dict(self._parent_paths),
            ),
        )
        logger.debug(
            f"构建索引配置 '{config.name}': version={config.version}, "
            f"partitioned={config.is_partitioned}"
        )
        return config
