"""迁移脚本生成与组合.

多个版本的迁移脚本会被组合成一个 Painless 脚本，
使 v1 -> v4 的迁移在一遍中依次执行 v2、v3、v4 的转换。
"""

from collections.abc import Iterable

from .exceptions import IndexConfigError
from .models import MigrationScript


def rename_field_script(original_name: str, current_name: str) -> str:
    """生成重命名字段的脚本.

    示例:
        >>> rename_field_script("name", "full_name")
        "if (ctx._source.containsKey('name')) { ctx._source['full_name'] = ctx._source['name']; ctx._source.remove('name'); }"
    """
    if not original_name or not current_name:
        raise IndexConfigError("字段名称不能为空")
    return (
        f"if (ctx._source.containsKey('{original_name}')) {{ "
        f"ctx._source['{current_name}'] = ctx._source['{original_name}']; "
        f"ctx._source.remove('{original_name}'); }}"
    )


def remove_field_script(field_name: str) -> str:
    """生成删除字段的脚本."""
    if not field_name:
        raise IndexConfigError("字段名称不能为空")
    return (
        f"if (ctx._source.containsKey('{field_name}')) {{ "
        f"ctx._source.remove('{field_name}'); }}"
    )


def select_migration_scripts(
    scripts: Iterable[MigrationScript], current_version: int, target_version: int
) -> list[MigrationScript]:
    """选出 current_version < version <= target_version 的脚本，按版本升序."""
    selected = [
        script
        for script in scripts
        if current_version < script.version <= target_version
    ]
    return sorted(selected, key=lambda script: script.version)


def _guarded_body(script: MigrationScript, type_field: str | None) -> str:
    if script.doc_type is None:
        return script.script
    if not type_field:
        raise IndexConfigError(f"版本 {script.version} 的迁移脚本限定了文档类型，但未配置类型字段")
    return (
        f"if (ctx._source.{type_field} == '{script.doc_type}') {{ {script.script} }}"
    )


def combine_migration_scripts(
    scripts: Iterable[MigrationScript],
    current_version: int,
    target_version: int,
    type_field: str | None = None,
) -> str | None:
    """组合 (current_version, target_version] 区间内的迁移脚本.

    单个脚本原样返回；多个脚本时每个脚本包装为 ``void fNNN(def ctx)`` 函数，
    组合结果为函数定义加上按顺序的调用。

    Returns:
        组合后的脚本，没有需要执行的脚本时返回 None
    """
    selected = select_migration_scripts(scripts, current_version, target_version)
    if not selected:
        return None

    bodies = [_guarded_body(script, type_field) for script in selected]
    if len(bodies) == 1:
        return bodies[0]

    definitions = "".join(
        f"void f{i:03d}(def ctx) {{ {body} }}\n" for i, body in enumerate(bodies)
    )
    calls = " ".join(f"f{i:03d}(ctx);" for i in range(len(bodies)))
    return definitions + calls
