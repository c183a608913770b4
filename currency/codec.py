"""JSON encoding of requests and responses.

Format on the wire (UTF-8, one message per frame, newline after each):
  request:  {"Get":"<selector>"}
  success:  [{"code":"USD","name":"US Dollar","country":"United States","symbol":"$"}, ...]
  error:    {"error":"<message>"}
"""
import json
import logging
from dataclasses import dataclass
from typing import Tuple, Union

from currency.errors import DecodeError
from currency.store import Record

log = logging.getLogger(__name__)

REQUEST_FIELD = "Get"
ERROR_FIELD = "error"
FALLBACK_ERROR = b'{"error":"internal error"}\n'


@dataclass(frozen=True)
class Query:
    selector: str


@dataclass(frozen=True)
class Results:
    records: Tuple[Record, ...] = ()


@dataclass(frozen=True)
class ErrorReply:
    message: str


Result = Union[Results, ErrorReply]


def _dumps(obj) -> bytes:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8") + b"\n"


def _loads(data: bytes):
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DecodeError(f"invalid UTF-8 in message: {err}") from err
    try:
        return json.loads(text)
    except json.JSONDecodeError as err:
        raise DecodeError(f"invalid JSON: {err}") from err


def encode_request(query: Query) -> bytes:
    return _dumps({REQUEST_FIELD: query.selector})


def decode_request(data: bytes) -> Query:
    obj = _loads(data)
    if not isinstance(obj, dict):
        raise DecodeError(f"request must be a JSON object, got {type(obj).__name__}")
    # field name is matched case-insensitively: {"GET": ...} is accepted
    for key, value in obj.items():
        if key.lower() == REQUEST_FIELD.lower():
            if not isinstance(value, str):
                raise DecodeError(
                    f"cannot decode request: field {key!r} must be a string, got {type(value).__name__}"
                )
            return Query(value)
    raise DecodeError(f"cannot decode request: missing field {REQUEST_FIELD!r}")


def encode_response(result: Result) -> bytes:
    """Serialize a result. Never raises; falls back to ``FALLBACK_ERROR``."""
    try:
        if isinstance(result, ErrorReply):
            return _dumps({ERROR_FIELD: result.message})
        return _dumps([r.to_dict() for r in result.records])
    except (TypeError, ValueError, AttributeError) as err:
        log.error("failed to encode response %r: %s", result, err)
        return FALLBACK_ERROR


def _record_from(obj) -> Record:
    if not isinstance(obj, dict):
        raise DecodeError(f"result entries must be objects, got {type(obj).__name__}")
    values = {}
    for name in ("code", "name", "country", "symbol"):
        value = obj.get(name, "")
        if not isinstance(value, str):
            raise DecodeError(f"result field {name!r} must be a string")
        values[name] = value
    return Record(**values)


def decode_response(data: bytes) -> Result:
    obj = _loads(data)
    if isinstance(obj, list):
        return Results(tuple(_record_from(o) for o in obj))
    if isinstance(obj, dict) and isinstance(obj.get(ERROR_FIELD), str):
        return ErrorReply(obj[ERROR_FIELD])
    raise DecodeError("response must be an array of currencies or an error object")
