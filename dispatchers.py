"""
Action dispatcher: turns an Action into one or two dependent requests and
classifies the server's answer.

Two shapes are used by the game:

* single-step - one mutating call whose JSON ``error`` field holds a
  sentinel code (repair, refuel, trip accept);
* two-step - a detail-page visit that primes server-side state, then the
  mutating call (employee sleep, freight buttons). The second request is
  only sent after the first has resolved.

Outcomes are returned, never raised, so one entity's failure cannot stop
the others.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from bot_config import DEFAULT_ENDPOINTS, endpoint
from entities import TRAILER, EntityRecord, FreightButton
from errors import ActionRejected, BotError, ErrorKind, NetworkError, ParseError
from evaluators import ACCEPT, PRESS, REFUEL, REPAIR, SLEEP, Action
from page_fetcher import PageFetcher, RawResponse, Request

logger = logging.getLogger(__name__)

SUCCESS = "success"
REJECTED = "rejected"
NETWORK_ERROR = "network_error"
PARSE_ERROR = "parse_error"
CANCELLED = "cancelled"

_STATUS_ERROR_KIND = {
    REJECTED: ErrorKind.ACTION_REJECTED,
    NETWORK_ERROR: ErrorKind.NETWORK_ERROR,
    PARSE_ERROR: ErrorKind.PARSE_ERROR,
    CANCELLED: ErrorKind.CANCELLED,
}

SUCCESS_CODES = ("SUCCESS",)
# The trip endpoint reports a successful accept with this "error" code
TRIP_ACCEPTED_CODES = ("ERROR_FREIGHT_ACCEPTED",)

_ONCLICK_URL = re.compile(r"['\"]((?:ajax/|index\.php)[^'\"]*)['\"]")


@dataclass(frozen=True)
class ActionOutcome:
    entity_id: str
    action: str
    status: str
    code: Optional[str] = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return _STATUS_ERROR_KIND.get(self.status)

    def to_error(self) -> Optional[BotError]:
        """The failure as an exception instance (None for a success)"""
        if self.succeeded:
            return None
        if self.status == REJECTED:
            return ActionRejected(self.code or "", self.message)
        if self.status == NETWORK_ERROR:
            return NetworkError(self.message)
        if self.status == PARSE_ERROR:
            return ParseError(self.message)
        return BotError(f"{self.action} {self.status}")


class CancellationToken:
    """Per-chain stop flag, checked before every request of the chain"""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def interpret_response(entity_id: str, action: str, response: RawResponse,
                       success_codes: Sequence[str] = SUCCESS_CODES,
                       expect_json: bool = True) -> ActionOutcome:
    """
    Classify a mutating call's response.

    A JSON object with an ``error`` field is judged by its sentinel code;
    ``fullerror`` carries the human-readable detail. Anything else is a
    parse error when JSON was expected, or a plain HTTP status check
    otherwise (page-style endpoints answer with HTML).
    """
    try:
        payload = json.loads(response.text)
    except ValueError:
        payload = None

    if not isinstance(payload, dict) or "error" not in payload:
        if expect_json:
            return ActionOutcome(entity_id, action, PARSE_ERROR,
                                 message=f"Unexpected response: {response.text[:200]!r}")
        if response.ok:
            return ActionOutcome(entity_id, action, SUCCESS)
        return ActionOutcome(entity_id, action, REJECTED, code=f"HTTP {response.status}")

    code = str(payload.get("error"))
    message = str(payload.get("fullerror") or "")
    status = SUCCESS if code in success_codes else REJECTED
    return ActionOutcome(entity_id, action, status, code=code, message=message)


def button_request(button: FreightButton) -> Optional[Request]:
    """Request equivalent to clicking a freight button, from its href or onclick"""
    href = (button.href or "").strip()
    if href and not href.startswith("#") and not href.lower().startswith("javascript:"):
        return Request("GET", href)
    m = _ONCLICK_URL.search(button.onclick or "")
    if m is None:
        return None
    url = m.group(1)
    return Request("POST" if url.startswith("ajax/") else "GET", url)


class ActionDispatcher:
    def __init__(self, fetcher: PageFetcher, endpoints: Optional[dict] = None):
        self.fetcher = fetcher
        self.endpoints = dict(DEFAULT_ENDPOINTS)
        self.endpoints.update(endpoints or {})

    # ── request helpers ───────────────────────────────────────────────────────

    async def _call(self, action: Action, request: Request,
                    token: Optional[CancellationToken]) -> Tuple[Optional[RawResponse], Optional[ActionOutcome]]:
        if token is not None and token.cancelled:
            return None, ActionOutcome(action.entity_id, action.name, CANCELLED)
        result = await self.fetcher.fetch(request)
        if not result.ok:
            return None, ActionOutcome(action.entity_id, action.name, NETWORK_ERROR,
                                       message=str(result.error))
        return result.response, None

    async def _single_step(self, action: Action, request: Request, token,
                           success_codes=SUCCESS_CODES, expect_json=True) -> ActionOutcome:
        response, failure = await self._call(action, request, token)
        if failure is not None:
            return failure
        return interpret_response(action.entity_id, action.name, response, success_codes, expect_json)

    async def _two_step(self, action: Action, visit: Request, trigger: Request, token,
                        success_codes=SUCCESS_CODES, expect_json=False) -> ActionOutcome:
        _, failure = await self._call(action, visit, token)
        if failure is not None:
            return failure
        return await self._single_step(action, trigger, token, success_codes, expect_json)

    # ── per-action chains ─────────────────────────────────────────────────────

    async def _sleep(self, action: Action, token) -> ActionOutcome:
        return await self._two_step(
            action,
            Request("GET", endpoint(self.endpoints, "employee_detail", action.entity_id)),
            Request("GET", endpoint(self.endpoints, "employee_sleep", action.entity_id)),
            token,
        )

    async def _repair(self, action: Action, token) -> ActionOutcome:
        field = "repairtrailer" if action.kind == TRAILER else "repairtruck"
        request = Request("POST", endpoint(self.endpoints, "repair"), data={field: action.entity_id})
        return await self._single_step(action, request, token)

    async def _refuel(self, action: Action, token) -> ActionOutcome:
        request = Request("GET", endpoint(self.endpoints, "refuel"),
                          params={"x": action.entity_id, "p": "1", "returnfr": "0"})
        return await self._single_step(action, request, token)

    async def _accept(self, action: Action, token) -> ActionOutcome:
        request = Request("POST", endpoint(self.endpoints, "trip_accept"),
                          data={"freight[]": action.entity_id})
        return await self._single_step(action, request, token, TRIP_ACCEPTED_CODES)

    async def _press(self, action: Action, token) -> ActionOutcome:
        # Buttons advance the freight one stage at a time, so stop at the first failure
        detail = Request("GET", endpoint(self.endpoints, "freight_detail", action.entity_id))
        pressed = []
        for button in action.buttons:
            trigger = button_request(button)
            if trigger is None:
                return ActionOutcome(action.entity_id, action.name, PARSE_ERROR,
                                     message=f"No trigger found for button {button.label!r}")
            logger.info(f"Freight {action.entity_id}: pressing '{button.label}'")
            outcome = await self._two_step(action, detail, trigger, token)
            if not outcome.succeeded:
                return outcome
            pressed.append(button.label)
        return ActionOutcome(action.entity_id, action.name, SUCCESS,
                             message=f"Pressed: {', '.join(pressed)}")

    async def dispatch(self, entity: EntityRecord, action: Action,
                       token: Optional[CancellationToken] = None) -> ActionOutcome:
        handlers = {
            SLEEP: self._sleep,
            REPAIR: self._repair,
            REFUEL: self._refuel,
            ACCEPT: self._accept,
            PRESS: self._press,
        }
        handler = handlers.get(action.name)
        if handler is None:
            raise ValueError(f"Unknown action: {action.name!r}")

        outcome = await handler(action, token)
        label = f"{entity.kind} {entity.id} {action.name}"
        if outcome.succeeded:
            logger.info(f"✓ {label} succeeded {outcome.message}".rstrip())
        elif outcome.status == CANCELLED:
            logger.warning(f"{label} cancelled")
        else:
            logger.error(f"✗ {label} failed ({outcome.status}): {outcome.code or ''} {outcome.message}".rstrip())
        return outcome
