import pytest

from siptransport.message import NameAddr, SipRequest, StatusCode
from siptransport.server_invite import (
    T1,
    T2,
    Accepted,
    Rejected,
    RequestReceived,
    ResponseOut,
    ServerInviteTransaction,
    StatusFromUser,
    TimerFired,
    build_invite_response,
)

INVITE_HEAD = [
    "INVITE sip:1003@192.168.66.113;transport=UDP SIP/2.0",
    "Via: SIP/2.0/UDP 192.168.66.155:59530;branch=z9hG4bK-524287-1---4900d58f2225595c;rport",
    "Max-Forwards: 70",
    "Contact: <sip:1002@192.168.66.155:59530;transport=UDP>",
    "To: <sip:1003@192.168.66.113>",
    "From: <sip:1002@192.168.66.113;transport=UDP>;tag=b3b27614",
    "Call-ID: bDioe0g_lGydVf71NpTBnA..",
    "CSeq: 1 INVITE",
    "Allow: INVITE, ACK, CANCEL, BYE, NOTIFY, REFER, MESSAGE, OPTIONS, INFO, SUBSCRIBE",
    "Content-Type: application/sdp",
    "User-Agent: Zoiper v2.10.19.5",
]
INVITE_BODY = [
    "v=0",
    "o=Z 0 199267607 IN IP4 192.168.66.155",
    "s=Z",
    "c=IN IP4 192.168.66.155",
    "t=0 0",
    "m=audio 61265 RTP/AVP 3 101 110 97 8 0",
    "a=rtpmap:101 telephone-event/8000",
    "a=fmtp:101 0-16",
    "a=rtpmap:110 speex/8000",
    "a=rtpmap:97 iLBC/8000",
    "a=fmtp:97 mode=20",
    "a=sendrecv",
    "a=rtcp-mux",
    "",
]

ACK_REQ = (
    "ACK sip:192.168.66.113 SIP/2.0\r\n"
    "Via: SIP/2.0/UDP 192.168.66.155:59530;branch=z9hG4bK-524287-1---3c9aaece04169f91;rport\r\n"
    "Max-Forwards: 70\r\n"
    "Contact: <sip:1002@192.168.66.155:59530;transport=UDP>\r\n"
    "To: <sip:1003@192.168.66.113>\r\n"
    "From: <sip:1002@192.168.66.113;transport=UDP>;tag=b3b27614\r\n"
    "Call-ID: bDioe0g_lGydVf71NpTBnA..\r\n"
    "CSeq: 1 ACK\r\n"
    "User-Agent: Zoiper v2.10.19.5\r\n"
    "Content-Length: 0\r\n\r\n"
)


def make_invite(extra_headers=()):
    body = "\r\n".join(INVITE_BODY)
    head = INVITE_HEAD + list(extra_headers) + [f"Content-Length: {len(body)}"]
    return SipRequest.parse("\r\n".join(head) + "\r\n\r\n" + body)


@pytest.fixture
def local_contact():
    return NameAddr.parse("sip:127.0.0.1:5060")


@pytest.fixture
def transaction(local_contact):
    return ServerInviteTransaction(0, local_contact, make_invite())


def expect_response(transaction):
    action = transaction.pop_action()
    assert isinstance(action, ResponseOut)
    return action.dest, action.response


def test_simple_success(transaction):
    assert transaction.pop_action() is None

    transaction.on_event(T1, TimerFired())
    dest, res = expect_response(transaction)
    assert dest is None
    assert res.status_code == StatusCode.TRYING
    assert transaction.pop_action() is None

    transaction.on_event(T1 + 200, StatusFromUser(StatusCode.RINGING))
    dest, res = expect_response(transaction)
    assert dest is None
    assert res.status_code == StatusCode.RINGING
    assert transaction.pop_action() is None

    transaction.on_event(T1 + 400, StatusFromUser(StatusCode.OK))
    dest, res = expect_response(transaction)
    assert dest is None
    assert res.status_code == StatusCode.OK
    assert transaction.pop_action() == Accepted(None)
    assert transaction.pop_action() is None


def test_simple_reject(transaction):
    assert transaction.pop_action() is None
    transaction.on_event(20, StatusFromUser(StatusCode.BUSY_HERE))
    dest, res = expect_response(transaction)
    assert dest is None
    assert res.status_code == StatusCode.BUSY_HERE

    transaction.on_event(T1 + 20, TimerFired())
    dest, res = expect_response(transaction)
    assert dest is None
    assert res.status_code == StatusCode.BUSY_HERE
    assert transaction.pop_action() is None

    transaction.on_event(3 * T1 + 20, TimerFired())
    dest, res = expect_response(transaction)
    assert dest is None
    assert res.status_code == StatusCode.BUSY_HERE
    assert transaction.pop_action() is None

    transaction.on_event(3 * T1 + 30, RequestReceived(SipRequest.parse(ACK_REQ)))
    assert transaction.pop_action() is None

    transaction.on_event(3 * T1 + 30 + T1, TimerFired())
    assert transaction.pop_action() == Rejected(success=True)
    assert transaction.pop_action() is None


def test_trying_waits_for_tu_timer(transaction):
    transaction.on_event(199, TimerFired())
    assert transaction.pop_action() is None
    transaction.on_event(200, TimerFired())
    _, res = expect_response(transaction)
    assert res.status_code == StatusCode.TRYING
    transaction.on_event(1000, TimerFired())
    assert transaction.pop_action() is None


def test_provisional_cancels_trying(transaction):
    transaction.on_event(10, StatusFromUser(StatusCode.RINGING))
    _, res = expect_response(transaction)
    assert res.status_code == StatusCode.RINGING
    transaction.on_event(T1, TimerFired())
    assert transaction.pop_action() is None


def test_accepted_carries_body(transaction):
    body = ("application/sdp", b"v=0\r\n")
    transaction.on_event(10, StatusFromUser(StatusCode.OK, body))
    _, res = expect_response(transaction)
    assert res.body == b"v=0\r\n"
    assert res.content_type() == "application/sdp"
    assert transaction.pop_action() == Accepted(body)
    assert transaction.terminated


def test_timer_h_rejects_without_ack(transaction):
    transaction.on_event(0, StatusFromUser(StatusCode.BUSY_HERE))
    expect_response(transaction)
    transaction.on_event(T2, TimerFired())
    assert transaction.pop_action() == Rejected(success=False)
    assert transaction.pop_action() is None
    transaction.on_event(T2 + T1, TimerFired())
    assert transaction.pop_action() is None


def test_events_after_termination_are_ignored(transaction):
    transaction.on_event(10, StatusFromUser(StatusCode.OK))
    expect_response(transaction)
    assert transaction.pop_action() == Accepted(None)
    transaction.on_event(20, StatusFromUser(StatusCode.BUSY_HERE))
    transaction.on_event(T2, TimerFired())
    assert transaction.pop_action() is None


def test_ack_while_proceeding_is_ignored(transaction):
    transaction.on_event(10, RequestReceived(SipRequest.parse(ACK_REQ)))
    assert transaction.pop_action() is None
    assert not transaction.terminated


def test_response_echoes_dialog_headers(local_contact):
    invite = make_invite()
    res = build_invite_response(invite, local_contact, StatusCode.RINGING)
    assert res.call_id == "bDioe0g_lGydVf71NpTBnA.."
    assert res.cseq == invite.cseq
    assert res.from_.tag == "b3b27614"
    assert res.via.branch == invite.via.branch


def test_ringing_has_contact_and_allow(local_contact):
    res = build_invite_response(make_invite(), local_contact, StatusCode.RINGING)
    assert res.header("Contact") == str(local_contact)
    assert res.header("Allow") == "INVITE, ACK, CANCEL, OPTIONS, BYE"


def test_trying_has_no_contact_or_allow(local_contact):
    res = build_invite_response(make_invite(), local_contact, StatusCode.TRYING)
    assert res.header("Contact") is None
    assert res.header("Allow") is None


def test_busy_here_has_no_contact_or_allow(local_contact):
    res = build_invite_response(make_invite(), local_contact, StatusCode.BUSY_HERE)
    assert res.header("Contact") is None
    assert res.header("Allow") is None


def test_ambiguous_has_contact_only(local_contact):
    res = build_invite_response(make_invite(), local_contact, StatusCode.AMBIGUOUS)
    assert res.header("Contact") == str(local_contact)
    assert res.header("Allow") is None


def test_method_not_allowed_has_allow_only(local_contact):
    res = build_invite_response(make_invite(), local_contact, StatusCode.METHOD_NOT_ALLOWED)
    assert res.header("Allow") == "INVITE, ACK, CANCEL, OPTIONS, BYE"
    assert res.header("Contact") is None


def test_record_route_is_copied(local_contact):
    invite = make_invite(["Record-Route: <sip:10.0.0.1;lr>"])
    res = build_invite_response(invite, local_contact, StatusCode.OK)
    assert res.header("Record-Route") == "<sip:10.0.0.1;lr>"
    reparsed = type(res).parse(res.to_bytes())
    assert reparsed.header("Record-Route") == "<sip:10.0.0.1;lr>"