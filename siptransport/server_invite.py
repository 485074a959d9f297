"""The INVITE server transaction (RFC 3261, section 17.2.1)."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Union

from .message import NameAddr, SipRequest, SipResponse, StatusCode, StatusKind, status_kind

log = logging.getLogger(__name__)

TU_100_AFTER_MS = 200
T1 = 500
T2 = 500 * 64

ALLOWED_METHODS = "INVITE, ACK, CANCEL, OPTIONS, BYE"

Body = tuple[str, bytes]
Address = tuple[str, int]


@dataclass(frozen=True)
class TimerFired:
    """Time has passed; check the transaction timers."""


@dataclass
class RequestReceived:
    """A request arrived for this transaction."""

    request: SipRequest


@dataclass(frozen=True)
class StatusFromUser:
    """The user decided on a status to answer with."""

    code: int
    body: Body | None = None


ServerInviteEvent = Union[TimerFired, RequestReceived, StatusFromUser]


@dataclass
class ResponseOut:
    """Send this response, to ``dest`` or to the default address."""

    dest: Address | None
    response: SipResponse


@dataclass(frozen=True)
class Accepted:
    """The call was answered with a 2xx carrying ``body``."""

    body: Body | None = None


@dataclass(frozen=True)
class Rejected:
    """The call was refused; ``success`` tells whether the ACK arrived."""

    success: bool


ServerInviteAction = Union[ResponseOut, Accepted, Rejected]


def build_invite_response(
    init_req: SipRequest, local_contact: NameAddr, code: int, body: Body | None = None
) -> SipResponse:
    """Build a response to an INVITE, with Record-Route, Contact and Allow as needed."""
    base = init_req.build_response(code, body)
    headers = list(base.headers)
    headers.extend(
        (name, value) for name, value in init_req.headers if name.strip().lower() == "record-route"
    )
    value = int(code)
    if 101 <= value <= 399 or value == 485:
        headers.append(("Contact", str(local_contact)))
    if 180 <= value <= 189 or 200 <= value <= 299 or value == 405:
        headers.append(("Allow", ALLOWED_METHODS))
    return SipResponse(base.status_code, base.reason, headers, base.body)


@dataclass
class _Proceeding:
    tu_100_timer: int | None


@dataclass
class _Completed:
    code: int
    timer_g: int
    timer_g_duration: int
    timer_h: int


@dataclass
class _Confirmed:
    timer_i: int


@dataclass
class _Terminated:
    pass


class ServerInviteTransaction:
    """Answers one incoming INVITE, retransmitting final failures until ACKed."""

    def __init__(self, now_ms: int, local_contact: NameAddr, init_req: SipRequest) -> None:
        self.local_contact = local_contact
        self.init_req = init_req
        self._state: _Proceeding | _Completed | _Confirmed | _Terminated = _Proceeding(
            now_ms + TU_100_AFTER_MS
        )
        self._actions: Deque[ServerInviteAction] = deque()

    @property
    def terminated(self) -> bool:
        return isinstance(self._state, _Terminated)

    def on_event(self, now_ms: int, event: ServerInviteEvent) -> None:
        state = self._state
        if isinstance(state, _Proceeding):
            self._on_proceeding(state, now_ms, event)
        elif isinstance(state, _Completed):
            self._on_completed(state, now_ms, event)
        elif isinstance(state, _Confirmed):
            self._on_confirmed(state, now_ms, event)

    def pop_action(self) -> ServerInviteAction | None:
        return self._actions.popleft() if self._actions else None

    def _respond(self, code: int, body: Body | None = None) -> None:
        res = build_invite_response(self.init_req, self.local_contact, code, body)
        self._actions.append(ResponseOut(None, res))

    def _on_proceeding(self, state: _Proceeding, now_ms: int, event: ServerInviteEvent) -> None:
        if isinstance(event, TimerFired):
            if state.tu_100_timer is not None and now_ms >= state.tu_100_timer:
                log.info("sending 100 Trying")
                self._respond(StatusCode.TRYING)
                state.tu_100_timer = None
        elif isinstance(event, StatusFromUser):
            code = int(event.code)
            kind = status_kind(code)
            if kind is StatusKind.PROVISIONAL:
                log.info("sending provisional %s", code)
                state.tu_100_timer = None
                self._respond(code, event.body)
            elif 300 <= code <= 699:
                log.info("sending final %s", code)
                self._state = _Completed(
                    code=code, timer_g=now_ms + T1, timer_g_duration=T1, timer_h=now_ms + T2
                )
                self._respond(code, event.body)
            elif kind is StatusKind.SUCCESSFUL:
                log.info("sending successful %s", code)
                self._state = _Terminated()
                self._respond(code, event.body)
                self._actions.append(Accepted(event.body))

    def _on_completed(self, state: _Completed, now_ms: int, event: ServerInviteEvent) -> None:
        if isinstance(event, TimerFired):
            if now_ms >= state.timer_h:
                log.info("no ACK before timer H, terminating")
                self._state = _Terminated()
                self._actions.append(Rejected(success=False))
            elif now_ms >= state.timer_g:
                log.info("no ACK yet, resending %s", state.code)
                self._respond(state.code)
                state.timer_g_duration = min(T2, 2 * state.timer_g_duration)
                state.timer_g = now_ms + state.timer_g_duration
        elif isinstance(event, RequestReceived):
            if event.request.method == "ACK":
                log.info("ACK received, confirmed")
                self._state = _Confirmed(now_ms + T1)

    def _on_confirmed(self, state: _Confirmed, now_ms: int, event: ServerInviteEvent) -> None:
        if isinstance(event, TimerFired) and now_ms >= state.timer_i:
            log.info("timer I fired, terminating")
            self._state = _Terminated()
            self._actions.append(Rejected(success=True))