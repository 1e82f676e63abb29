"""Debug logging utility for request/response payload inspection."""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

from ..config import settings

logger = logging.getLogger("openrouter_client.debug.payloads")


def _enabled(enabled: bool) -> bool:
    return enabled or settings.DEBUG_LOG_PAYLOADS


def _truncate(text: str, max_length: int = 0) -> str:
    """Truncate text if max_length is set."""
    if max_length <= 0 or len(text) <= max_length:
        return text
    return text[:max_length] + f"... [truncated, total {len(text)} chars]"


def _safe_json(obj: Any, indent: int = 2) -> str:
    """Safely serialize object to JSON string."""
    try:
        return json.dumps(obj, ensure_ascii=False, indent=indent, default=str)
    except (TypeError, ValueError) as e:
        return f"<serialization error: {e}>"


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Hide credentials in a header mapping."""
    return {
        k: ("***" if k.lower() in ("authorization", "x-api-key") else v)
        for k, v in headers.items()
    }


def log_outgoing_request(
    request_id: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    body: Optional[Any] = None,
    enabled: bool = False,
) -> None:
    """Log request sent to the gateway."""
    if not _enabled(enabled):
        return

    timestamp = datetime.now().isoformat()
    max_len = settings.DEBUG_LOG_MAX_LENGTH

    log_parts = [
        f"\n{'>'*60}",
        f"[{timestamp}] OUTGOING REQUEST: {request_id}",
        f"{'>'*60}",
        f"URL: {url}",
    ]

    if headers:
        log_parts.append(f"Headers: {_safe_json(mask_headers(headers))}")

    if body is not None:
        log_parts.append(f"Body:\n{_truncate(_safe_json(body), max_len)}")

    log_parts.append(">" * 60)
    logger.info("\n".join(log_parts))


def log_incoming_response(
    request_id: str,
    status_code: int,
    body: Optional[str] = None,
    is_stream: bool = False,
    enabled: bool = False,
) -> None:
    """Log response headers/body received from the gateway."""
    if not _enabled(enabled):
        return

    timestamp = datetime.now().isoformat()
    max_len = settings.DEBUG_LOG_MAX_LENGTH

    log_parts = [
        f"\n{'<'*60}",
        f"[{timestamp}] INCOMING RESPONSE: {request_id}",
        f"{'<'*60}",
        f"Status: {status_code}",
        f"Stream: {is_stream}",
    ]

    if body is not None:
        log_parts.append(f"Body:\n{_truncate(body, max_len)}")
    elif is_stream:
        log_parts.append("Body: <event stream>")

    log_parts.append("<" * 60)
    logger.info("\n".join(log_parts))


def log_stream_chunk(
    request_id: str,
    chunk_index: int,
    data: Optional[Any] = None,
    enabled: bool = False,
) -> None:
    """Log individual decoded stream chunk."""
    if not _enabled(enabled):
        return

    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", exclude_none=True)

    max_len = settings.DEBUG_LOG_MAX_LENGTH
    data_str = _truncate(_safe_json(data, indent=None), max_len) if data else ""
    logger.debug(f"[{request_id}] Stream #{chunk_index}: {data_str}")
