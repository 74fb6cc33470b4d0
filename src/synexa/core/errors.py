"""提醒引擎的错误类型

只有创建/修改/取消这些同步请求会把错误抛给调用方；
批处理中单个提醒的失败只体现在该提醒的状态上，不会以异常的形式传播。
"""

__all__ = ["ReminderError", "ReminderValidationError", "ReminderNotFoundError", "ReminderStateError"]


class ReminderError(Exception):
    pass


class ReminderValidationError(ReminderError, ValueError):
    """请求参数不合法(缺少标题、缺少时间依据、时间已过等)"""


class ReminderNotFoundError(ReminderError, LookupError):
    pass


class ReminderStateError(ReminderError):
    """提醒已离开 PENDING 状态，不允许再修改或取消"""
