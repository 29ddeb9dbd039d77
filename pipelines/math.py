"""
Arithmetic on {"operation", "a", "b"}.

The operands are read from the request body itself, or from a JSON
object in the last user message of a chat request. Errors come back as
a result with status "error" rather than an exception.
"""

import json
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

name = "Math Pipeline"
description = "Performs mathematical operations on input data"

OPERATIONS = {
    "add": lambda a, b: a + b,
    "subtract": lambda a, b: a - b,
    "multiply": lambda a, b: a * b,
    "divide": lambda a, b: a / b,
}


def _operands(body):
    if isinstance(body, dict) and "operation" in body:
        return body
    messages = body.get("messages") if isinstance(body, dict) else None
    for message in reversed(messages or []):
        if message.get("role") == "user":
            try:
                parsed = json.loads(message.get("content") or "")
            except (TypeError, ValueError):
                return {}
            return parsed if isinstance(parsed, dict) else {}
    return {}


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def pipe(body, user=None):
    logger.info(f"Math pipeline executing with body: {body!r}")
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        operands = _operands(body)
        operation = operands.get("operation")
        a, b = operands.get("a"), operands.get("b")

        if not operation or not _is_number(a) or not _is_number(b):
            raise ValueError("Invalid input: operation, a, and b are required and a, b must be numbers")
        if operation not in OPERATIONS:
            raise ValueError(f"Unsupported operation: {operation}")
        if operation == "divide" and b == 0:
            raise ZeroDivisionError("Division by zero")

        return {
            "operation": operation,
            "operands": {"a": a, "b": b},
            "result": OPERATIONS[operation](a, b),
            "timestamp": timestamp,
            "user": user,
            "pipeline": "math_pipeline",
            "status": "success",
        }
    except (ValueError, ZeroDivisionError) as e:
        logger.error(f"Math pipeline error: {e}")
        return {
            "error": str(e),
            "timestamp": timestamp,
            "user": user,
            "pipeline": "math_pipeline",
            "status": "error",
        }
