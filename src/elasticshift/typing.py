"""elasticshift 类型定义模块."""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Dict, List, Optional

# 文档源数据类型
Document = Dict[str, Any]

# 索引映射 / 设置字典类型
MappingDict = Dict[str, Any]
SettingsDict = Dict[str, Any]

# 游标令牌类型（可 JSON 序列化）
CursorToken = Dict[str, Any]

# 父文档路径映射
# 格式: {文档类型: 父文档 ID 所在的点号路径}
ParentPathMapping = Dict[str, str]

# 进度回调: (百分比 0..100, 消息或 None)，可以是同步或异步函数
ProgressCallback = Callable[[int, Optional[str]], Optional[Awaitable[None]]]

# 时钟函数
NowFunc = Callable[[], datetime]

# 别名更新动作列表
AliasActions = List[Dict[str, Dict[str, str]]]
