# siptransport

Building blocks for a media server that takes part in SIP voice calls over UDP.
The package has no dependencies outside the standard library.

| Module | What it holds |
| --- | --- |
| `siptransport.message` | `SipRequest`, `SipResponse`, `parse_message`, and the typed header values `Uri`, `NameAddr`, `Via`, `CSeq` and `DigestAuthorization`. Also `StatusCode`, `StatusKind` and `status_kind`. |
| `siptransport.server_invite` | `ServerInviteTransaction`, the answering side of an INVITE, and `build_invite_response`. |
| `siptransport.client_invite` | `ClientInviteTransaction`, the calling side of an INVITE. |
| `siptransport.virtual_socket` | `VirtualSocketPlane` and `VirtualSocket`. They route messages for many dialogs through one shared socket. |
| `siptransport.codec` | G.711 A-law and µ-law coding (`G711Encoder`, `G711Decoder`, `AudioFrame`, and the per-sample functions) and `is_rtp`. |
| `siptransport.utils` | `generate_random_string`. |

## Installing

```
pip install .
```

## SIP messages

`SipRequest.parse` and `SipResponse.parse` accept `bytes` or `str`. If you do
not know which kind of message a datagram holds, `parse_message` reads its start
line and returns the right one.

Every message must carry `Call-ID`, `CSeq`, `From`, `To` and `Via`. Parsing a
message without one of them raises `MissingHeaderError`. Any other problem
raises `SipParseError`, which is a subclass of `ValueError`. These headers are
then available as typed attributes: `call_id`, `cseq`, `from_`, `to`, `via` and
`timestamp`.

```python
from siptransport.message import SipRequest, StatusCode

request = SipRequest.parse(datagram)
request.method                 # "INVITE"
request.cseq.seq               # 1
request.header("Max-Forwards") # "70"; compact header names work too
contact = request.header_contact()   # NameAddr, or None

response = request.build_response(StatusCode.RINGING)
datagram_out = response.to_bytes()
```

`build_response` copies the request's Via, From, To, Call-ID and CSeq. It adds
Content-Length and User-Agent, and Content-Type when you pass a body as
`(content_type, bytes)`. On a `100 Trying` it also echoes the request's
Timestamp.

`Uri.socket_addr()` returns `(ip, port)` when the host is an IP literal, using
port 5060 if the URI has none. For a host name it returns `None`.

## INVITE transactions

Both transactions follow the same pattern. You pass in the current time in
milliseconds and an event. You then drain the actions they queued with
`pop_action()` until it returns `None`. They never read a clock themselves. The
timers use T1 = 500 ms and T2 = 64 × T1.

### Answering a call

```python
from siptransport.message import NameAddr, SipRequest, StatusCode
from siptransport.server_invite import (
    Accepted, Rejected, ResponseOut, ServerInviteTransaction,
    StatusFromUser, TimerFired, RequestReceived,
)

invite = SipRequest.parse(datagram)
local = NameAddr.parse("<sip:127.0.0.1:5060>")
tx = ServerInviteTransaction(0, local, invite)

tx.on_event(500, TimerFired())                          # nothing from you yet: 100 Trying
tx.on_event(700, StatusFromUser(StatusCode.RINGING))    # 180 Ringing
tx.on_event(900, StatusFromUser(StatusCode.OK))         # 200 OK, then Accepted(None)

while (action := tx.pop_action()) is not None:
    if isinstance(action, ResponseOut):
        send(action.response.to_bytes(), action.dest)   # dest None: reply to the caller
```

If you answer with a status from 300 to 699, the transaction resends it on timer
G until an ACK arrives (`RequestReceived(ack)`). Once the ACK has arrived and
timer I has fired, it reports `Rejected(success=True)`. If no ACK arrives before
timer H, it reports `Rejected(success=False)`.

### Placing a call

```python
from siptransport.client_invite import (
    CallAccepted, CallRejected, CallTimedOut, ClientInviteTransaction,
    RequestOut, ResponseReceived,
)
from siptransport.message import NameAddr, SipResponse
from siptransport.server_invite import TimerFired
from siptransport.utils import generate_random_string

tx = ClientInviteTransaction(
    0,
    generate_random_string(16),
    NameAddr.parse("<sip:media@192.0.2.1:5060>"),
    NameAddr.parse("<sip:media@192.0.2.1>;tag=abc"),
    NameAddr.parse("<sip:alice@192.0.2.20>"),
    local_sdp,
)
tx.origin_request              # the INVITE, ready to send
tx.on_event(600, TimerFired()) # queues a resend on timer A
tx.on_event(800, ResponseReceived(SipResponse.parse(datagram)))
```

The transaction sends an ACK for every 1xx, 2xx and failure response. A 2xx
ends it with `CallAccepted(body)`, where body is the remote `(content_type, bytes)`
or `None`. A failure ends it with `CallRejected()` once timer D fires. If no
answer arrives before timer B, it ends with `CallTimedOut()`.

## Virtual sockets

`VirtualSocketPlane` gives each dialog its own `VirtualSocket`. Both sides of
each link are bounded to 1000 queued messages.

- `plane.forward(id, msg)` delivers an incoming message to a dialog's socket. It
  returns `False` if the id is unknown or the socket's queue is full.
- `await socket.recv()` receives that message.
- `socket.send_to(dest, msg)` queues an outgoing message. It raises
  `ChannelFullError` when the queue is full.
- `await plane.recv()` yields `(id, (dest, msg))`, or `(id, None)` when a socket
  has been closed.
- `plane.close_socket(id)` forgets the socket. A pending `socket.recv()` then
  raises `ChannelClosedError`.

A `VirtualSocket` is also an async context manager that closes itself on exit.

## G.711

```python
from siptransport.codec import AudioFrame, G711Codec, G711Decoder, G711Encoder, is_rtp

payload = G711Encoder(G711Codec.ALAW).encode(AudioFrame([0, 100, -100]))
frame = G711Decoder(G711Codec.ALAW).decode(payload)   # AudioFrame at 8000 Hz
```

`AudioFrame` holds at most `capacity` samples; 160 is the default.
`is_rtp(packet)` accepts packets of at least 12 bytes whose first byte is
between 128 and 191.

## What the package does not do

- It opens no UDP sockets and runs no server loop. You move datagrams between
  the network, the transactions and the virtual sockets yourself.
- It has no call-level logic above the INVITE transactions. That covers
  handling CANCEL and BYE, sending BYE with retries, and tracking dialogs.
- It does not handle REGISTER or check digest credentials.
  `DigestAuthorization.parse` only reads the header.
- It handles no RTP media beyond recognising RTP packets and coding G.711. There
  is no Opus and no resampling.

## Tests

```
pip install ".[test]"
pytest
```