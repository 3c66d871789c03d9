"""
时长表达式解析

用于 dashboard.ignore_after 配置：支持整数秒、"2m" / "1h30m" / "1 hour 30 minutes"
这类人类可读表达式，以及 ISO 8601 时长（"PT1H30M"）。
"""

import logging
import re
from typing import Any, Optional

from .exceptions import DurationParseError

logger = logging.getLogger(__name__)


UNIT_SECONDS = {
    "w": 604800, "wk": 604800, "week": 604800, "weeks": 604800,
    "d": 86400, "day": 86400, "days": 86400,
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
}

_NUMBER = r"\d+(?:\.\d+)?"
_TOKEN = re.compile(rf"({_NUMBER})\s*([a-z]+)")
_HUMAN = re.compile(rf"(?:\s*{_NUMBER}\s*[a-z]+\s*,?)+")
_ISO = re.compile(
    rf"p(?:(?P<weeks>{_NUMBER})w)?(?:(?P<days>{_NUMBER})d)?"
    rf"(?:t(?:(?P<hours>{_NUMBER})h)?(?:(?P<minutes>{_NUMBER})m)?(?:(?P<seconds>{_NUMBER})s)?)?"
)
_ISO_UNITS = {"weeks": 604800, "days": 86400, "hours": 3600, "minutes": 60, "seconds": 1}


def parse_duration(expression: str) -> float:
    """
    解析时长表达式为秒数

    Args:
        expression: 如 "90"、"2m"、"1h30m"、"1 hour 30 minutes"、"PT1H30M"

    Returns:
        总秒数

    Raises:
        DurationParseError: 表达式为空、单位未知或格式不合法
    """
    text = expression.strip().lower()
    if not text:
        raise DurationParseError("Empty duration expression")

    if text.isdecimal():
        return float(text)

    if text.startswith("p"):
        return _parse_iso(expression, text)

    if not _HUMAN.fullmatch(text):
        raise DurationParseError(f"Unrecognised duration expression: {expression!r}")

    total = 0.0
    for amount, unit in _TOKEN.findall(text):
        if unit not in UNIT_SECONDS:
            raise DurationParseError(f"Unknown duration unit {unit!r} in {expression!r}")
        total += float(amount) * UNIT_SECONDS[unit]
    return total


def _parse_iso(expression: str, text: str) -> float:
    match = _ISO.fullmatch(text)
    if not match or not any(match.groupdict().values()) or text.endswith("t"):
        raise DurationParseError(f"Invalid ISO 8601 duration: {expression!r}")
    return sum(
        float(value) * _ISO_UNITS[name]
        for name, value in match.groupdict().items()
        if value is not None
    )


def resolve_ignore_after(value: Any) -> Optional[float]:
    """
    解析过期阈值配置

    - 非负整数：直接作为秒数
    - 字符串：按时长表达式解析，解析失败时静默禁用阈值
    - 其它（None、负数、布尔值等）：不启用阈值

    Returns:
        阈值秒数，None 表示不过滤
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str):
        try:
            return parse_duration(value)
        except DurationParseError as e:
            logger.debug(f"Ignoring staleness threshold: {e}")
            return None
    return None
