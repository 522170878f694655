import json
import logging
from typing import Any, Callable, Dict, Optional

from .types import AuxiliaryValue, LogLine

Logger = Callable[[LogLine], None]

_LEVELS = {0: logging.ERROR, 1: logging.INFO, 2: logging.DEBUG}


def default_logger(line: LogLine) -> None:
    """Forward a LogLine to the standard logging module."""
    category = line.get("category") or "general"
    level = _LEVELS.get(line.get("level", 1), logging.INFO)
    message = f"[{category.replace('_', ' ').title().replace(' ', '')}] {line.get('message', '')}"
    aux = line.get("auxiliary")
    if aux:
        details = ", ".join(f"{k}={v.get('value')}" for k, v in aux.items())
        message = f"{message} ({details})"
    logging.getLogger(f"web_observer.{category}").log(level, message)


def aux(**values: Any) -> Dict[str, AuxiliaryValue]:
    """Build an auxiliary mapping, serializing non-string values as JSON."""
    out: Dict[str, AuxiliaryValue] = {}
    for key, value in values.items():
        if isinstance(value, str):
            out[key] = {"value": value, "type": "string"}
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            out[key] = {"value": str(value), "type": "integer"}
        else:
            out[key] = {"value": json.dumps(value, default=str), "type": "object"}
    return out


def log_line(category: str, message: str, level: int = 1,
             auxiliary: Optional[Dict[str, AuxiliaryValue]] = None) -> LogLine:
    line: LogLine = {"category": category, "message": message, "level": level}
    if auxiliary:
        line["auxiliary"] = auxiliary
    return line
