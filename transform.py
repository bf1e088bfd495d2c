"""Request body rewriting from the client dialect to the upstream dialect."""
import json
import logging
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from errors import BadRequestBodyError
from models import ChatCompletionRequest

logger = logging.getLogger("sensechat-proxy.transform")

TOP_P_MIN = 0.000001
TOP_P_MAX = 0.999999

DECLARED_KEYS = tuple(ChatCompletionRequest.model_fields)

def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)

def to_repetition_penalty(frequency_penalty: float) -> float:
    """Map a frequency penalty in [-2, 2] onto a repetition penalty in [0, 2]."""
    return (frequency_penalty + 2) / 2

def clamp_top_p(top_p: float) -> float:
    """Keep top_p inside the open interval (0, 1) the upstream accepts."""
    if top_p <= 0:
        return TOP_P_MIN
    if top_p >= 1:
        return TOP_P_MAX
    return top_p

def rewrite_fields(request: ChatCompletionRequest) -> Dict[str, Any]:
    """Apply the field mapping and return the upstream body as a dict."""
    # Declared keys only when the client sent them, even as null
    body = {name: getattr(request, name) for name in request.model_fields_set if name in DECLARED_KEYS}
    body.update(request.model_extra or {})

    if "max_tokens" in body:
        body["max_new_tokens"] = body.pop("max_tokens")

    if "frequency_penalty" in body:
        frequency_penalty = body.pop("frequency_penalty")
        if is_number(frequency_penalty):
            body["repetition_penalty"] = to_repetition_penalty(frequency_penalty)
        else:
            logger.debug(f"Dropping non-numeric frequency_penalty: {frequency_penalty!r}")

    if "top_p" in body and is_number(body["top_p"]):
        body["top_p"] = clamp_top_p(body["top_p"])

    return body

def is_json_content(content_type: Optional[str]) -> bool:
    return bool(content_type) and "application/json" in content_type

def sniff_model(raw: bytes) -> str:
    """Best-effort model name from a body that was not declared as JSON."""
    try:
        return ChatCompletionRequest.model_validate_json(raw).requested_model()
    except ValidationError:
        return ""

def prepare_upstream_body(raw: bytes, content_type: Optional[str]) -> Tuple[bytes, str]:
    """
    Rewrite an inbound body for the upstream.

    Returns:
        (body to send upstream, model name the client asked for)

    Raises:
        BadRequestBodyError: JSON content type with an undecodable body
    """
    if not is_json_content(content_type):
        return raw, sniff_model(raw)

    try:
        request = ChatCompletionRequest.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"Rejecting malformed JSON body: {e.errors()[0]['msg']}")
        raise BadRequestBodyError()

    body = rewrite_fields(request)
    encoded = json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return encoded, request.requested_model()
