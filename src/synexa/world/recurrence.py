"""重复提醒的规则解析与下次时间计算

规则以字符串形式保存在提醒上，支持三种写法:
- "DAILY"                          每 1 天 ("DAILY:" 同样视为每 1 天)
- "WEEKLY:2"                       每 2 周
- '{"type": "MONTHLY", "interval": 3}'

JSON 写法还支持:
- daysOfWeek: WEEKLY 在指定的星期几触发，0 = 周日 ... 6 = 周六
- dayOfMonth: MONTHLY 固定在每月的某一天，目标月份没有这一天时取月末
- endDate:    ISO 8601 时间，之后不再生成下一次
count 与 cronExpression 不支持，带有这两个键(或其他未知键)的规则视为不合法。

月/年的推算使用 dateutil.relativedelta，目标月份没有原日期时自动取当月最后一天
(1 月 31 日 + 1 个月 = 2 月 28/29 日)，时分秒与时区保持不变。
星期几按 anchor 自身的时区计算，数据库里的提醒时间都是 UTC。
本模块只包含纯函数，无 I/O。
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

from synexa.datamodel import RecurrenceRule, RecurrenceType
from synexa.logger import logger
from synexa.utils import as_utc

__all__ = ["parse_recurrence_rule", "format_recurrence_rule", "is_valid_recurrence_rule", "next_occurrence"]

_JSON_KEYS = {"type", "interval", "daysOfWeek", "dayOfMonth", "endDate"}


def _coerce_interval(raw: Any) -> int | None:
    # bool 是 int 的子类，需要单独排除
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and raw.strip().isdigit():
        value = int(raw.strip())
    else:
        return None
    return value if value >= 1 else None


def _coerce_type(raw: Any) -> RecurrenceType | None:
    if not isinstance(raw, str):
        return None
    try:
        return RecurrenceType(raw.strip().upper())
    except ValueError:
        return None


def _coerce_days_of_week(raw: Any) -> tuple[int, ...] | None:
    if not isinstance(raw, (list, tuple)) or not raw:
        return None
    days = set()
    for day in raw:
        if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
            return None
        days.add(day)
    return tuple(sorted(days))


def _coerce_day_of_month(raw: Any) -> int | None:
    if isinstance(raw, bool) or not isinstance(raw, int) or not 1 <= raw <= 31:
        return None
    return raw


def _coerce_end_date(raw: Any) -> datetime | None:
    if not isinstance(raw, str):
        return None
    try:
        return as_utc(isoparse(raw.strip()))
    except ValueError:
        return None


def _parse_json_rule(data: dict) -> RecurrenceRule | None:
    unknown = set(data) - _JSON_KEYS
    if unknown:
        logger.debug(f"重复规则包含不支持的字段: {sorted(unknown)}")
        return None

    rule_type = _coerce_type(data.get("type"))
    raw_interval = data.get("interval")
    interval = _coerce_interval(raw_interval if raw_interval is not None else 1)
    if rule_type is None or interval is None:
        return None

    days_of_week = None
    if data.get("daysOfWeek") is not None:
        if rule_type != RecurrenceType.WEEKLY:
            return None
        days_of_week = _coerce_days_of_week(data["daysOfWeek"])
        if days_of_week is None:
            return None

    day_of_month = None
    if data.get("dayOfMonth") is not None:
        if rule_type != RecurrenceType.MONTHLY:
            return None
        day_of_month = _coerce_day_of_month(data["dayOfMonth"])
        if day_of_month is None:
            return None

    end_date = None
    if data.get("endDate") is not None:
        end_date = _coerce_end_date(data["endDate"])
        if end_date is None:
            return None

    return RecurrenceRule(
        type=rule_type,
        interval=interval,
        days_of_week=days_of_week,
        day_of_month=day_of_month,
        end_date=end_date,
    )


def parse_recurrence_rule(raw: str | None) -> RecurrenceRule | None:
    """解析规则字符串，格式不合法时返回 None(调用方应视为不再重复)"""
    if raw is None:
        return None
    text = raw.strip()
    if text == "":
        return None

    if text.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.debug(f"重复规则 JSON 无法解析: {raw}")
            return None
        rule = _parse_json_rule(data) if isinstance(data, dict) else None
    else:
        type_part, _, interval_part = text.partition(":")
        rule_type = _coerce_type(type_part)
        interval = _coerce_interval(interval_part) if interval_part.strip() else 1
        rule = RecurrenceRule(type=rule_type, interval=interval) if rule_type and interval else None

    if rule is None:
        logger.debug(f"重复规则不合法: {raw}")
    return rule


def format_recurrence_rule(rule: RecurrenceRule) -> str:
    if rule.days_of_week is None and rule.day_of_month is None and rule.end_date is None:
        if rule.interval == 1:
            return rule.type.value
        return f"{rule.type.value}:{rule.interval}"

    data: dict[str, Any] = {"type": rule.type.value, "interval": rule.interval}
    if rule.days_of_week is not None:
        data["daysOfWeek"] = list(rule.days_of_week)
    if rule.day_of_month is not None:
        data["dayOfMonth"] = rule.day_of_month
    if rule.end_date is not None:
        data["endDate"] = as_utc(rule.end_date).isoformat()
    return json.dumps(data)


def is_valid_recurrence_rule(raw: str | None) -> bool:
    return parse_recurrence_rule(raw) is not None


def _next_listed_weekday(anchor: datetime, days_of_week: tuple[int, ...], interval: int) -> datetime:
    # datetime.weekday(): 0 = 周一；规则里 0 = 周日
    today = (anchor.weekday() + 1) % 7
    for day in days_of_week:
        if day > today:
            return anchor + relativedelta(days=day - today)
    # 本周已无可选日，跳到 interval 周后那一周的第一个可选日
    return anchor + relativedelta(days=7 - today + days_of_week[0], weeks=interval - 1)


def next_occurrence(anchor: datetime, rule: RecurrenceRule) -> datetime | None:
    """计算 anchor 之后的下一次触发时间，规则不合法或超过 end_date 时返回 None"""
    if not isinstance(rule, RecurrenceRule):
        return None
    interval = _coerce_interval(rule.interval)
    if interval is None:
        return None

    if rule.type == RecurrenceType.DAILY:
        result = anchor + relativedelta(days=interval)
    elif rule.type == RecurrenceType.WEEKLY:
        if rule.days_of_week is not None:
            days = _coerce_days_of_week(rule.days_of_week)
            if days is None:
                return None
            result = _next_listed_weekday(anchor, days, interval)
        else:
            result = anchor + relativedelta(weeks=interval)
    elif rule.type == RecurrenceType.MONTHLY:
        if rule.day_of_month is not None:
            day = _coerce_day_of_month(rule.day_of_month)
            if day is None:
                return None
            # relativedelta 的绝对 day 超过当月天数时取月末
            result = anchor + relativedelta(months=interval, day=day)
        else:
            result = anchor + relativedelta(months=interval)
    elif rule.type == RecurrenceType.YEARLY:
        result = anchor + relativedelta(years=interval)
    else:
        return None

    if rule.end_date is not None and as_utc(result) > as_utc(rule.end_date):
        return None
    return result
