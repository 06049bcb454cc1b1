from __future__ import annotations

from datetime import datetime

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_file_size(size_bytes: int) -> str:
    if size_bytes <= 0:
        return "0 B"
    exponent = 0
    while size_bytes >= 1024 ** (exponent + 1) and exponent < len(_SIZE_UNITS) - 1:
        exponent += 1
    value = round(size_bytes / (1024**exponent), 2)
    if value == int(value):
        value = int(value)
    return f"{value} {_SIZE_UNITS[exponent]}"


def describe_expiry(expires_at: datetime, now: datetime) -> str:
    minutes = max(0, int((expires_at - now).total_seconds() // 60))
    if minutes < 60:
        return f"{minutes} min"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    days = hours // 24
    return f"{days} day{'s' if days > 1 else ''}"
