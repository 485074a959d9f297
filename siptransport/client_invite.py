"""The INVITE client transaction (RFC 3261, section 17.1.1)."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Union

from .message import (
    DEFAULT_SIP_PORT,
    USER_AGENT,
    CSeq,
    NameAddr,
    SipRequest,
    SipResponse,
    StatusKind,
    Uri,
)
from .server_invite import ALLOWED_METHODS, TimerFired
from .utils import generate_random_string

log = logging.getLogger(__name__)

T1 = 500
T2 = 64 * T1

Body = tuple[str, bytes]
Address = tuple[str, int]


@dataclass
class ResponseReceived:
    """A response arrived for this transaction."""

    response: SipResponse


ClientInviteEvent = Union[TimerFired, ResponseReceived]


@dataclass
class RequestOut:
    """Send this request, to ``dest`` or to the default address."""

    dest: Address | None
    request: SipRequest


@dataclass(frozen=True)
class CallAccepted:
    """The remote side answered with a 2xx carrying ``body``."""

    body: Body | None = None


@dataclass(frozen=True)
class CallRejected:
    """The remote side refused the call."""


@dataclass(frozen=True)
class CallTimedOut:
    """No final answer arrived before timer B."""


ClientInviteAction = Union[RequestOut, CallAccepted, CallRejected, CallTimedOut]


@dataclass
class _Calling:
    created_at: int
    timer_a_duration: int
    timer_a: int
    timer_b: int


@dataclass
class _Proceeding:
    pass


@dataclass
class _Completed:
    timer_d: int


@dataclass
class _Terminated:
    pass


def _host_port(uri: Uri) -> str:
    host = f"[{uri.host}]" if ":" in uri.host else uri.host
    port = uri.port if uri.port is not None else DEFAULT_SIP_PORT
    return f"{host}:{port}"


def _fresh_via(local_contact: NameAddr) -> str:
    return f"SIP/2.0/UDP {_host_port(local_contact.uri)};branch=z9hG4bK-{generate_random_string(8)}"


def _request_uri(remote_to: NameAddr) -> Uri:
    target = remote_to.uri
    return Uri(
        host=target.host,
        scheme="sip",
        user=target.user,
        password=target.password,
        port=target.port,
        params=(("transport", "UDP"),),
    )


class ClientInviteTransaction:
    """Sends one INVITE, retransmits it and reports how the call was answered."""

    def __init__(
        self,
        now_ms: int,
        call_id: str,
        local_contact: NameAddr,
        local_from: NameAddr,
        remote_to: NameAddr,
        sdp: str,
    ) -> None:
        self.call_id = call_id
        self.local_contact = local_contact
        self.local_from = local_from
        self.remote_to = remote_to
        self.origin_request = self._create_invite(sdp)
        self._state: _Calling | _Proceeding | _Completed | _Terminated = _Calling(
            created_at=now_ms, timer_a_duration=T1, timer_a=now_ms + T1, timer_b=now_ms + T2
        )
        self._actions: Deque[ClientInviteAction] = deque()

    @property
    def terminated(self) -> bool:
        return isinstance(self._state, _Terminated)

    def on_event(self, now_ms: int, event: ClientInviteEvent) -> None:
        state = self._state
        if isinstance(state, _Calling):
            self._on_calling(state, now_ms, event)
        elif isinstance(state, _Proceeding):
            self._on_proceeding(now_ms, event)
        elif isinstance(state, _Completed):
            self._on_completed(state, now_ms, event)

    def pop_action(self) -> ClientInviteAction | None:
        return self._actions.popleft() if self._actions else None

    def _send_ack(self, res: SipResponse) -> None:
        self._actions.append(RequestOut(None, self._create_ack(res)))

    def _accept(self, res: SipResponse) -> None:
        self._send_ack(res)
        self._state = _Terminated()
        content_type = res.content_type()
        body = (content_type, res.body) if content_type is not None else None
        self._actions.append(CallAccepted(body))

    def _fail(self, now_ms: int, res: SipResponse) -> None:
        self._state = _Completed(timer_d=now_ms + T1)
        self._send_ack(res)

    def _on_calling(self, state: _Calling, now_ms: int, event: ClientInviteEvent) -> None:
        if isinstance(event, TimerFired):
            if now_ms >= state.timer_b:
                log.info("no answer before timer B, terminating")
                self._state = _Terminated()
                self._actions.append(CallTimedOut())
            elif now_ms >= state.timer_a:
                state.timer_a_duration = min(T2, state.timer_a_duration * 2)
                state.timer_a = now_ms + state.timer_a_duration
                self._actions.append(RequestOut(None, self.origin_request))
            return
        res = event.response
        kind = res.kind
        if kind is StatusKind.PROVISIONAL:
            self._state = _Proceeding()
            self._send_ack(res)
        elif kind is StatusKind.SUCCESSFUL:
            self._accept(res)
        elif kind in (StatusKind.REDIRECTION, StatusKind.REQUEST_FAILURE, StatusKind.SERVER_FAILURE):
            self._fail(now_ms, res)

    def _on_proceeding(self, now_ms: int, event: ClientInviteEvent) -> None:
        if not isinstance(event, ResponseReceived):
            return
        res = event.response
        kind = res.kind
        if kind is StatusKind.SUCCESSFUL:
            self._accept(res)
        elif kind in (StatusKind.REDIRECTION, StatusKind.REQUEST_FAILURE, StatusKind.SERVER_FAILURE):
            self._fail(now_ms, res)

    def _on_completed(self, state: _Completed, now_ms: int, event: ClientInviteEvent) -> None:
        if isinstance(event, TimerFired):
            if now_ms >= state.timer_d:
                self._state = _Terminated()
                self._actions.append(CallRejected())
        elif event.response.kind is StatusKind.REDIRECTION:
            self._send_ack(event.response)

    def _create_invite(self, sdp: str) -> SipRequest:
        body = sdp.encode("utf-8")
        headers = [
            ("Via", _fresh_via(self.local_contact)),
            ("Max-Forwards", "70"),
            ("Contact", str(self.local_contact)),
            ("From", str(self.local_from)),
            ("To", str(self.remote_to)),
            ("Call-ID", self.call_id),
            ("CSeq", str(CSeq(1, "INVITE"))),
            ("Allow", ALLOWED_METHODS),
            ("Content-Length", str(len(body))),
            ("Content-Type", "application/sdp"),
            ("User-Agent", USER_AGENT),
        ]
        return SipRequest("INVITE", _request_uri(self.remote_to), headers, body)

    def _create_ack(self, res: SipResponse) -> SipRequest:
        origin = self.origin_request
        headers = [
            ("Via", str(origin.via)),
            ("Max-Forwards", "70"),
            ("From", str(origin.from_)),
            ("To", str(res.to)),
            ("Call-ID", origin.call_id),
            ("CSeq", str(CSeq(1, "ACK"))),
            ("Content-Length", "0"),
            ("User-Agent", USER_AGENT),
        ]
        return SipRequest("ACK", origin.uri, headers, b"")