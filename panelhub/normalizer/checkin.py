from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple

from ..schemas.domain import CheckinProbe, ExecutionOutcome
from ..upstream.client import UpstreamResponse

DEFAULT_CHECKIN_ENDPOINTS: Tuple[str, ...] = ("/api/user/checkin", "/api/user/check_in", "/api/checkin")
CHECKIN_STATUS_PATH = "/api/user/check_in_status"

ALREADY_CHECKED_PHRASES: Tuple[str, ...] = ("已签到", "already checked", "already signed")


def interpret_checkin_status(response: UpstreamResponse) -> CheckinProbe:
    """Map a check-in status reply to a probe result.

    Only a 200 with a boolean ``can_check_in`` (top-level or under ``data``) is
    conclusive; everything else is ``unknown``.
    """
    if response.status != 200 or not isinstance(response.body, Mapping):
        return CheckinProbe.unknown
    flag = response.body.get("can_check_in")
    if flag is None and isinstance(response.body.get("data"), Mapping):
        flag = response.body["data"].get("can_check_in")
    if flag is True:
        return CheckinProbe.available
    if flag is False:
        return CheckinProbe.checked_in
    return CheckinProbe.unknown


def reply_message(body: Any) -> Optional[str]:
    if isinstance(body, Mapping):
        msg = body.get("message") or body.get("msg")
        return str(msg) if msg else None
    if isinstance(body, str) and body.strip():
        return body.strip()
    return None


def classify_checkin_reply(body: Any) -> Tuple[ExecutionOutcome, str]:
    """Classify a 200 check-in reply as ``success`` or ``alreadyChecked``.

    Returns:
        The outcome and a message (the panel's own message when it sent one).
    """
    message = reply_message(body)
    if message:
        lowered = message.lower()
        if any(p in message or p in lowered for p in ALREADY_CHECKED_PHRASES):
            return ExecutionOutcome.already_checked, message
        return ExecutionOutcome.success, message
    return ExecutionOutcome.success, "check-in succeeded"
