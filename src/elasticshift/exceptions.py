"""elasticshift 异常定义模块."""


class ElasticShiftError(Exception):
    """elasticshift 基础异常类."""

    pass
