"""
Response envelope shared by every route.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


def success_response(
    data: Any,
    message: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    if meta:
        body["meta"] = {"timestamp": datetime.now(timezone.utc).isoformat(), **meta}
    return body


def error_response(message: str, kind: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": message}
    if kind:
        body["kind"] = kind
    body.update(extra)
    return body
