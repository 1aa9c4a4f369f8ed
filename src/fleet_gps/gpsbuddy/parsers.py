"""Pure helpers for the heterogeneous shapes GPSBuddy responds with."""

import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

import pendulum

SUMMARY_MAX_CHARS = 240
SUMMARY_MAX_KEYS = 12

AUTH_ERROR_CODE = "MI001"

# Observed top-level keys holding the vehicle list, in lookup order
VEHICLE_ARRAY_KEYS = (
    "help_ws_gpsb_unitvehicle_filter",
    "gpsb_unitvehicle_filter_by_group",
    "gpsb_unitvehicle_filter_2",
    "gpsb_unitvehicle_filter",
    "unitvehicle_filter",
    "data",
)

_NESTED_TOKEN_KEYS = ("token", "Token", "sessionToken", "SessionToken")
_TOKEN_KEYS = (
    "token",
    "Token",
    "sessionToken",
    "SessionToken",
    # WCF / SOAP style JSON wrappers
    "d",
    "D",
    "InitializeSessionResult",
    "initializesessionresult",
    "result",
    "data",
    "Data",
)
_XML_TOKEN_PATTERNS = (
    re.compile(r"<token>([^<]+)</token>", re.IGNORECASE),
    re.compile(r"<InitializeSession>([^<]+)</InitializeSession>", re.IGNORECASE),
    re.compile(r"<Token>([^<]+)</Token>", re.IGNORECASE),
    re.compile(r"<string[^>]*>([^<]+)</string>", re.IGNORECASE),
)
_UUID_RE = re.compile(
    r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$", re.IGNORECASE
)
_DOTNET_DATE_RE = re.compile(r"/Date\((-?\d+)(?:[+-]\d{4})?\)/")


def parse_body(text: str) -> Any:
    """Decode a response body as JSON, falling back to the raw text."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return text


def _non_blank(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_token(raw: Any) -> Optional[str]:
    """
    Find the session token in an InitializeSession response.

    JSON field candidates are tried first, then XML tag patterns, then
    bare-string heuristics (UUID, or any opaque string of 12+ characters that
    doesn't look like markup or JSON).
    """
    if not raw:
        return None

    if isinstance(raw, dict):
        success = raw.get("success") or raw.get("Success")
        if _non_blank(success):
            return _non_blank(success)
        if isinstance(success, dict):
            for key in _NESTED_TOKEN_KEYS:
                if _non_blank(success.get(key)):
                    return _non_blank(success.get(key))

        candidates = [raw.get(key) for key in _TOKEN_KEYS]
        wrapped = raw.get("InitializeSessionResult")
        if isinstance(wrapped, dict):
            candidates.extend([wrapped.get("token"), wrapped.get("Token")])
        for candidate in candidates:
            if _non_blank(candidate):
                return _non_blank(candidate)
        return None

    if isinstance(raw, str):
        for pattern in _XML_TOKEN_PATTERNS:
            match = pattern.search(raw)
            if match and match.group(1).strip():
                return match.group(1).strip()

        plain = raw.strip()
        if _UUID_RE.match(plain):
            return plain
        # NOTE: opaque ids; plain-text error messages also pass this check
        if len(plain) >= 12 and not plain.startswith(("<", "{", "[")):
            return plain

    return None


def summarize_response(raw: Any) -> str:
    """Bounded one-line description of a payload, safe to log."""
    if raw is None:
        return "null"
    if isinstance(raw, str):
        collapsed = re.sub(r"\s+", " ", raw).strip()
        if len(collapsed) > SUMMARY_MAX_CHARS:
            return collapsed[:SUMMARY_MAX_CHARS] + "…"
        return collapsed
    if isinstance(raw, dict):
        keys = [str(k) for k in raw.keys()]
        head = ", ".join(keys[:SUMMARY_MAX_KEYS])
        more = ", …" if len(keys) > SUMMARY_MAX_KEYS else ""
        return f"object keys=[{head}{more}]"
    if isinstance(raw, list):
        return f"array length={len(raw)}"
    return str(raw)[:SUMMARY_MAX_CHARS]


def parse_number(value: Any) -> Optional[float]:
    """Parse a numeric field; anything non-numeric is None, never zero."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def round_half_up(value: float, ndigits: int = 0) -> float:
    factor = 10**ndigits
    return math.floor(value * factor + 0.5) / factor


def parse_gpsbuddy_date(value: Any) -> Optional[datetime]:
    """Convert GPSBuddy's ``/Date(<millis>)/`` or a generic date into UTC."""
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        match = _DOTNET_DATE_RE.search(value)
        if match:
            try:
                return datetime.fromtimestamp(
                    int(match.group(1)) / 1000, tz=timezone.utc
                )
            except (OverflowError, OSError, ValueError):
                return None
        try:
            parsed = pendulum.parse(value.strip(), strict=False)
        except (ValueError, TypeError, OverflowError):
            return None
        if not isinstance(parsed, datetime):
            return None
        return parsed.in_timezone("UTC")

    return None


def extract_vehicle_array(payload: Any) -> Optional[List[Any]]:
    if not isinstance(payload, dict):
        return None
    for key in VEHICLE_ARRAY_KEYS:
        rows = payload.get(key)
        if isinstance(rows, list):
            return rows
    return None


def api_error(payload: Any) -> Optional[Dict[str, Any]]:
    if isinstance(payload, dict) and payload.get("error"):
        error = payload["error"]
        if isinstance(error, dict):
            return error
        return {"message": str(error)}
    return None


def describe_api_error(error: Dict[str, Any]) -> str:
    return str(error.get("message") or error.get("code") or json.dumps(error))


def is_auth_error(payload: Any) -> bool:
    error = api_error(payload)
    if error is None:
        return False
    message = str(error.get("message") or "")
    return error.get("code") == AUTH_ERROR_CODE or "login" in message.lower()


def build_routine_xml(function_name: str, arguments: Dict[str, Any]) -> str:
    """Serialize a function call for the ExecuteReturnSet endpoint."""
    argument_tags = "".join(
        f"<{key}>{escape(str(value))}</{key}>" for key, value in arguments.items()
    )
    return (
        "<_routines><_routine>"
        f"<_name>{function_name}</_name>"
        f"<_arguments>{argument_tags}</_arguments>"
        "</_routine>"
        "<_returnType>json</_returnType>"
        "<_parallelExecution>0</_parallelExecution>"
        "<_compression>0</_compression>"
        "<_jsonDateFormat>0</_jsonDateFormat>"
        "</_routines>"
    )
