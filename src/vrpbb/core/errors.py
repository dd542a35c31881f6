"""求解器异常定义。"""


class SolverError(RuntimeError):
    pass


class OracleFailure(SolverError):
    """LP 求解器内部错误（非不可行信号），整个搜索必须中止。"""


class GurobiUnavailableError(SolverError):
    pass


class MalformedInstance(ValueError):
    """实例数据不合法（文件格式、容量、需求、距离矩阵等）。"""
