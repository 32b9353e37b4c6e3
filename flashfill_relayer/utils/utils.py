#!/usr/bin/env python3
"""
Utility Functions Module
Contains helper functions used throughout the relayer
"""

import logging
import time
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1


def now_ms() -> int:
    """Epoch milliseconds"""
    return int(time.time() * 1000)


def now_seconds() -> int:
    return int(time.time())


def iso_timestamp() -> str:
    """UTC ISO-8601 timestamp with millisecond precision"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> List[str]:
    """Validate that all required fields are present in data"""
    missing_fields = []
    for field in required_fields:
        if field not in data or data[field] is None or data[field] == "":
            missing_fields.append(field)
    return missing_fields


def parse_uint(value: Any, name: str = "value") -> int:
    """
    Parse a uint256 given as int, decimal string or 0x hex string.
    Raises ValueError on anything else.
    """
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an unsigned integer")
    if isinstance(value, int):
        num = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            num = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError:
            raise ValueError(f"{name} is not an unsigned integer: {value!r}")
    else:
        raise ValueError(f"{name} must be a string or integer")

    if num < 0 or num > UINT256_MAX:
        raise ValueError(f"{name} out of uint256 range")
    return num


def log_exception(func_name: str, exception: Exception, log: Optional[logging.Logger] = None) -> None:
    """Log exception with traceback"""
    target = log or logger
    target.error(f"Exception in {func_name}: {str(exception)}")
    target.error(f"Traceback: {traceback.format_exc()}")
