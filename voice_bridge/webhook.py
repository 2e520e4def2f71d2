"""
Inbound webhook parsing.

Turns the raw aiohttp request into the parameter mapping the signature is
computed over, and (after verification) into an InboundCall carrying the
routing inputs for one request.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple, Union

from .config import AppConfig
from .logging_config import get_logger

logger = get_logger(__name__)

ParamValue = Union[str, List[str]]

CALL_ID_FIELDS = ("CallSid", "call_sid", "callSid")
BUDGET_FIELDS = ("budget_cents", "budgetCents")


async def parse_inbound(request) -> Tuple[Dict[str, ParamValue], Dict[str, Any]]:
    """Return (signed params, payload) for a form-encoded or JSON body.

    Repeated form fields keep every value, in order, in the params mapping;
    the payload holds the first value. Unreadable bodies yield empty dicts,
    which can never pass signature verification.
    """
    if request.method != "POST" or not request.can_read_body:
        return {}, {}

    if request.content_type == "application/json":
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
            logger.warning("Unreadable JSON webhook body")
            return {}, {}
        if not isinstance(data, dict):
            return {}, {}
        params: Dict[str, ParamValue] = {}
        for key, value in data.items():
            if isinstance(value, list):
                params[str(key)] = [str(v) for v in value]
            else:
                params[str(key)] = value
        return params, dict(data)

    if request.content_type == "application/x-www-form-urlencoded":
        try:
            form = await request.post()
        except (UnicodeDecodeError, LookupError, ValueError):
            logger.warning("Unreadable form webhook body", charset=request.charset)
            return {}, {}
        params = {}
        payload: Dict[str, Any] = {}
        for key in form.keys():
            if key in params:
                continue
            values = [str(v) for v in form.getall(key)]
            params[key] = values if len(values) > 1 else values[0]
            payload[key] = values[0]
        return params, payload

    logger.warning("Unsupported webhook content type", content_type=request.content_type)
    return {}, {}


def _first(payload: Mapping[str, Any], names) -> Any:
    for name in names:
        value = payload.get(name)
        if value not in (None, ""):
            return value
    return None


def resolve_budget_ceiling(payload: Mapping[str, Any], default: float) -> float:
    """Per-request override when it parses to a positive number, else ``default``."""
    raw = _first(payload, BUDGET_FIELDS)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        value = float("nan")
    if not math.isfinite(value) or value <= 0:
        logger.warning("Ignoring invalid budget override", value=str(raw)[:32], default=default)
        return default
    return value


@dataclass
class InboundCall:
    """A request whose origin has been authenticated."""
    payload: Dict[str, Any]
    intent: str
    call_id: str
    budget_ceiling: float

    @classmethod
    def from_verified_payload(cls, payload: Mapping[str, Any], config: AppConfig) -> "InboundCall":
        intent = payload.get("intent")
        if isinstance(intent, list):
            intent = intent[0] if intent else None
        intent = str(intent).strip() if intent else ""
        call_id = _first(payload, CALL_ID_FIELDS)
        return cls(
            payload=dict(payload),
            intent=intent or config.routing.default_intent,
            call_id=str(call_id) if call_id is not None else "",
            budget_ceiling=resolve_budget_ceiling(payload, config.budget.default_ceiling_cents),
        )
