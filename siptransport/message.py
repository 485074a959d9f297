"""SIP requests and responses: parsing, typed header values and serialisation."""

from __future__ import annotations

import enum
import ipaddress
import re
from dataclasses import dataclass, field

USER_AGENT = "8xff-sip-media-server"
DEFAULT_SIP_PORT = 5060


class RequiredHeader(enum.Enum):
    CALL_ID = "Call-ID"
    CSEQ = "CSeq"
    FROM = "From"
    TO = "To"
    VIA = "Via"


class SipParseError(ValueError):
    """Raised when SIP text cannot be parsed."""


class MissingHeaderError(SipParseError):
    """Raised when a required header is absent."""

    def __init__(self, header: RequiredHeader) -> None:
        super().__init__(f"missing required header {header.value}")
        self.header = header


class StatusCode(enum.IntEnum):
    TRYING = 100
    RINGING = 180
    SESSION_PROGRESS = 183
    OK = 200
    MOVED_TEMPORARILY = 302
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    AMBIGUOUS = 485
    BUSY_HERE = 486
    REQUEST_TERMINATED = 487
    SERVER_INTERNAL_ERROR = 500
    DECLINE = 603

    @property
    def phrase(self) -> str:
        return _PHRASES[self]


_PHRASES = {
    StatusCode.TRYING: "Trying",
    StatusCode.RINGING: "Ringing",
    StatusCode.SESSION_PROGRESS: "Session Progress",
    StatusCode.OK: "OK",
    StatusCode.MOVED_TEMPORARILY: "Moved Temporarily",
    StatusCode.BAD_REQUEST: "Bad Request",
    StatusCode.UNAUTHORIZED: "Unauthorized",
    StatusCode.FORBIDDEN: "Forbidden",
    StatusCode.NOT_FOUND: "Not Found",
    StatusCode.METHOD_NOT_ALLOWED: "Method Not Allowed",
    StatusCode.REQUEST_TIMEOUT: "Request Timeout",
    StatusCode.AMBIGUOUS: "Ambiguous",
    StatusCode.BUSY_HERE: "Busy Here",
    StatusCode.REQUEST_TERMINATED: "Request Terminated",
    StatusCode.SERVER_INTERNAL_ERROR: "Server Internal Error",
    StatusCode.DECLINE: "Decline",
}


def _reason_for(code: int) -> str:
    try:
        return StatusCode(code).phrase
    except ValueError:
        return ""


class StatusKind(enum.Enum):
    PROVISIONAL = "provisional"
    SUCCESSFUL = "successful"
    REDIRECTION = "redirection"
    REQUEST_FAILURE = "request_failure"
    SERVER_FAILURE = "server_failure"
    GLOBAL_FAILURE = "global_failure"
    OTHER = "other"


def status_kind(code: int) -> StatusKind:
    """Classify a status code by its hundreds digit."""
    kinds = {
        1: StatusKind.PROVISIONAL,
        2: StatusKind.SUCCESSFUL,
        3: StatusKind.REDIRECTION,
        4: StatusKind.REQUEST_FAILURE,
        5: StatusKind.SERVER_FAILURE,
        6: StatusKind.GLOBAL_FAILURE,
    }
    if 100 <= code <= 699:
        return kinds[code // 100]
    return StatusKind.OTHER


Params = tuple[tuple[str, "str | None"], ...]


def _parse_params(items: list[str]) -> Params:
    result = []
    for item in items:
        item = item.strip()
        if not item:
            continue
        name, eq, value = item.partition("=")
        result.append((name.strip(), value.strip() if eq else None))
    return tuple(result)


def _format_params(params: Params) -> str:
    return "".join(f";{k}={v}" if v is not None else f";{k}" for k, v in params)


def _param(params: Params, name: str) -> str | None:
    lowered = name.lower()
    return next((v for k, v in params if k.lower() == lowered), None)


def _split_host_port(text: str) -> tuple[str, int | None]:
    text = text.strip()
    if text.startswith("["):
        host, close, rest = text[1:].partition("]")
        if not close:
            raise SipParseError(f"bad host {text!r}")
        port_text = rest[1:] if rest.startswith(":") else None
        if rest and port_text is None:
            raise SipParseError(f"bad host {text!r}")
    elif ":" in text:
        host, _, port_text = text.rpartition(":")
    else:
        host, port_text = text, None
    if not host:
        raise SipParseError(f"empty host in {text!r}")
    if port_text is None:
        return host, None
    if not port_text.isdigit():
        raise SipParseError(f"bad port in {text!r}")
    return host, int(port_text)


def _format_host_port(host: str, port: int | None) -> str:
    shown = f"[{host}]" if ":" in host else host
    return shown if port is None else f"{shown}:{port}"


@dataclass(frozen=True)
class Uri:
    """A sip: or sips: URI."""

    host: str
    scheme: str = "sip"
    user: str | None = None
    password: str | None = None
    port: int | None = None
    params: Params = ()
    headers: str = ""

    @classmethod
    def parse(cls, text: str) -> Uri:
        scheme, sep, rest = text.strip().partition(":")
        if not sep or not rest or not scheme.isalpha():
            raise SipParseError(f"bad uri {text!r}")
        rest, _, headers = rest.partition("?")
        parts = rest.split(";")
        user_info, at, host_port = parts[0].rpartition("@")
        user = password = None
        if at:
            user, colon, pw = user_info.partition(":")
            password = pw if colon else None
        host, port = _split_host_port(host_port)
        return cls(
            host=host,
            scheme=scheme.lower(),
            user=user,
            password=password,
            port=port,
            params=_parse_params(parts[1:]),
            headers=headers,
        )

    @property
    def host_with_port(self) -> str:
        return _format_host_port(self.host, self.port)

    def socket_addr(self) -> tuple[str, int] | None:
        """Return (ip, port) when the host is an IP literal, else None."""
        try:
            ip = ipaddress.ip_address(self.host)
        except ValueError:
            return None
        return str(ip), self.port if self.port is not None else DEFAULT_SIP_PORT

    def __str__(self) -> str:
        auth = ""
        if self.user is not None:
            auth = self.user if self.password is None else f"{self.user}:{self.password}"
            auth += "@"
        tail = f"?{self.headers}" if self.headers else ""
        return f"{self.scheme}:{auth}{self.host_with_port}{_format_params(self.params)}{tail}"


@dataclass(frozen=True)
class NameAddr:
    """A From, To or Contact value: optional display name, URI and parameters."""

    uri: Uri
    display_name: str | None = None
    params: Params = ()

    @classmethod
    def parse(cls, text: str) -> NameAddr:
        text = text.strip()
        if "<" in text:
            display, _, rest = text.partition("<")
            uri_text, close, tail = rest.partition(">")
            if not close:
                raise SipParseError(f"unterminated address {text!r}")
            display = display.strip().strip('"') or None
            return cls(Uri.parse(uri_text), display, _parse_params(tail.split(";")))
        uri_text, _, tail = text.partition(";")
        return cls(Uri.parse(uri_text), None, _parse_params(tail.split(";")))

    @property
    def tag(self) -> str | None:
        return _param(self.params, "tag")

    def __str__(self) -> str:
        display = f'"{self.display_name}" ' if self.display_name else ""
        return f"{display}<{self.uri}>{_format_params(self.params)}"


@dataclass(frozen=True)
class Via:
    """A Via header value."""

    host: str
    transport: str = "UDP"
    port: int | None = None
    params: Params = ()

    @classmethod
    def parse(cls, text: str) -> Via:
        protocol, _, rest = text.strip().partition(" ")
        pieces = protocol.split("/")
        if len(pieces) != 3 or not rest.strip():
            raise SipParseError(f"bad Via {text!r}")
        parts = rest.strip().split(";")
        host, port = _split_host_port(parts[0])
        return cls(host=host, transport=pieces[2].upper(), port=port, params=_parse_params(parts[1:]))

    @property
    def branch(self) -> str | None:
        return _param(self.params, "branch")

    def __str__(self) -> str:
        return f"SIP/2.0/{self.transport} {_format_host_port(self.host, self.port)}{_format_params(self.params)}"


@dataclass(frozen=True)
class CSeq:
    """A CSeq header value."""

    seq: int
    method: str

    @classmethod
    def parse(cls, text: str) -> CSeq:
        parts = text.split()
        if len(parts) != 2 or not parts[0].isdigit():
            raise SipParseError(f"bad CSeq {text!r}")
        return cls(int(parts[0]), parts[1].upper())

    def __str__(self) -> str:
        return f"{self.seq} {self.method}"


_AUTH_PARAM = re.compile(r'([\w-]+)\s*=\s*(?:"([^"]*)"|([^,\s]*))')


@dataclass(frozen=True)
class DigestAuthorization:
    """A parsed Digest Authorization header."""

    username: str
    realm: str
    nonce: str
    uri: str
    response: str
    algorithm: str | None = None
    extra: dict[str, str] = field(default_factory=dict, compare=False)

    @classmethod
    def parse(cls, text: str) -> DigestAuthorization:
        scheme, _, rest = text.strip().partition(" ")
        if scheme.lower() != "digest":
            raise SipParseError(f"not a Digest authorization: {text!r}")
        values = {
            m.group(1).lower(): m.group(2) if m.group(2) is not None else m.group(3)
            for m in _AUTH_PARAM.finditer(rest)
        }
        required = ("username", "realm", "nonce", "uri", "response")
        missing = [name for name in required if name not in values]
        if missing:
            raise SipParseError(f"authorization misses {', '.join(missing)}")
        extra = {k: v for k, v in values.items() if k not in required and k != "algorithm"}
        return cls(*(values[name] for name in required), algorithm=values.get("algorithm"), extra=extra)


_COMPACT = {
    "i": "call-id",
    "f": "from",
    "t": "to",
    "v": "via",
    "m": "contact",
    "l": "content-length",
    "c": "content-type",
    "k": "supported",
    "s": "subject",
}


def _canon(name: str) -> str:
    lowered = name.strip().lower()
    return _COMPACT.get(lowered, lowered)


Headers = list[tuple[str, str]]


def _typed_headers(headers: Headers):
    found: dict[str, object] = {}
    parsers = {
        "call-id": str.strip,
        "cseq": CSeq.parse,
        "from": NameAddr.parse,
        "to": NameAddr.parse,
        "via": Via.parse,
        "timestamp": str.strip,
    }
    for name, value in headers:
        key = _canon(name)
        parser = parsers.get(key)
        if parser is not None:
            found[key] = parser(value)
    for header in RequiredHeader:
        if header.value.lower() not in found:
            raise MissingHeaderError(header)
    return (
        found["call-id"],
        found["cseq"],
        found["from"],
        found["to"],
        found["via"],
        found.get("timestamp"),
    )


def _split_message(data: bytes | str) -> tuple[str, Headers, bytes]:
    if isinstance(data, str):
        data = data.encode("utf-8")
    head, sep, body = data.partition(b"\r\n\r\n")
    if not sep:
        head, _, body = data.partition(b"\n\n")
    try:
        text = head.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise SipParseError("header section is not UTF-8") from exc
    lines = text.replace("\r\n", "\n").split("\n")
    start = lines[0].strip()
    if not start:
        raise SipParseError("empty start line")
    headers: Headers = []
    for line in lines[1:]:
        if not line.strip():
            continue
        if line[0] in " \t" and headers:
            name, value = headers[-1]
            headers[-1] = (name, f"{value} {line.strip()}")
            continue
        name, colon, value = line.partition(":")
        if not colon or not name.strip():
            raise SipParseError(f"bad header line {line!r}")
        headers.append((name.strip(), value.strip()))
        if _canon(name) == "content-length":
            if not value.strip().isdigit():
                raise SipParseError(f"bad Content-Length {value!r}")
    for name, value in headers:
        if _canon(name) == "content-length":
            body = body[: int(value)]
    return start, headers, body


def _first_header(headers: Headers, name: str) -> str | None:
    key = _canon(name)
    return next((v for n, v in headers if _canon(n) == key), None)


def _contact(headers: Headers) -> NameAddr | None:
    value = _first_header(headers, "Contact")
    if value is None:
        return None
    try:
        return NameAddr.parse(value)
    except SipParseError:
        return None


def _serialise(start_line: str, headers: Headers, body: bytes) -> bytes:
    head = "".join(f"{name}: {value}\r\n" for name, value in headers)
    return f"{start_line}\r\n{head}\r\n".encode("utf-8") + body


@dataclass(eq=False)
class SipRequest:
    """A SIP request whose required headers are available typed."""

    method: str
    uri: Uri
    headers: Headers = field(default_factory=list)
    body: bytes = b""
    call_id: str = field(init=False, repr=False)
    cseq: CSeq = field(init=False, repr=False)
    from_: NameAddr = field(init=False, repr=False)
    to: NameAddr = field(init=False, repr=False)
    via: Via = field(init=False, repr=False)
    timestamp: str | None = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.call_id, self.cseq, self.from_, self.to, self.via, self.timestamp = _typed_headers(self.headers)

    @classmethod
    def parse(cls, data: bytes | str) -> SipRequest:
        start, headers, body = _split_message(data)
        parts = start.split()
        if len(parts) != 3 or not parts[2].upper().startswith("SIP/"):
            raise SipParseError(f"bad request line {start!r}")
        return cls(parts[0], Uri.parse(parts[1]), headers, body)

    def header(self, name: str) -> str | None:
        """Return the first value of the named header, compact forms included."""
        return _first_header(self.headers, name)

    def digest_uri(self) -> str:
        return str(self.uri)

    def body_str(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def header_authorization(self) -> str | None:
        return self.header("Authorization")

    def header_contact(self) -> NameAddr | None:
        """Return the Contact header parsed, or None when absent or invalid."""
        return _contact(self.headers)

    def build_response(self, code: int, body: tuple[str, bytes] | None = None) -> SipResponse:
        """Build a response echoing this request's dialog headers."""
        payload = body[1] if body else b""
        headers: Headers = [
            ("Via", str(self.via)),
            ("From", str(self.from_)),
            ("To", str(self.to)),
            ("Call-ID", self.call_id),
            ("CSeq", str(self.cseq)),
            ("Content-Length", str(len(payload))),
            ("User-Agent", USER_AGENT),
        ]
        if body:
            headers.append(("Content-Type", body[0]))
        if code == StatusCode.TRYING and self.timestamp is not None:
            headers.append(("Timestamp", self.timestamp))
        return SipResponse(int(code), headers=headers, body=payload)

    def to_bytes(self) -> bytes:
        return _serialise(f"{self.method} {self.uri} SIP/2.0", self.headers, self.body)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SipRequest):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    __hash__ = None  # type: ignore[assignment]


@dataclass(eq=False)
class SipResponse:
    """A SIP response whose required headers are available typed."""

    status_code: int
    reason: str = ""
    headers: Headers = field(default_factory=list)
    body: bytes = b""
    call_id: str = field(init=False, repr=False)
    cseq: CSeq = field(init=False, repr=False)
    from_: NameAddr = field(init=False, repr=False)
    to: NameAddr = field(init=False, repr=False)
    via: Via = field(init=False, repr=False)
    timestamp: str | None = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.status_code = int(self.status_code)
        if not self.reason:
            self.reason = _reason_for(self.status_code)
        self.call_id, self.cseq, self.from_, self.to, self.via, self.timestamp = _typed_headers(self.headers)

    @classmethod
    def parse(cls, data: bytes | str) -> SipResponse:
        start, headers, body = _split_message(data)
        parts = start.split(" ", 2)
        if len(parts) < 2 or not parts[0].upper().startswith("SIP/") or not parts[1].isdigit():
            raise SipParseError(f"bad status line {start!r}")
        reason = parts[2].strip() if len(parts) == 3 else ""
        return cls(int(parts[1]), reason, headers, body)

    @property
    def kind(self) -> StatusKind:
        return status_kind(self.status_code)

    def header(self, name: str) -> str | None:
        """Return the first value of the named header, compact forms included."""
        return _first_header(self.headers, name)

    def content_type(self) -> str | None:
        return self.header("Content-Type")

    def header_contact(self) -> NameAddr | None:
        """Return the Contact header parsed, or None when absent or invalid."""
        return _contact(self.headers)

    def to_bytes(self) -> bytes:
        start = f"SIP/2.0 {self.status_code} {self.reason}".rstrip()
        return _serialise(start, self.headers, self.body)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SipResponse):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    __hash__ = None  # type: ignore[assignment]


def parse_message(data: bytes | str) -> SipRequest | SipResponse:
    """Parse a datagram as a request or a response, by its start line."""
    raw = data.encode("utf-8") if isinstance(data, str) else data
    if raw.lstrip()[:4].upper() == b"SIP/":
        return SipResponse.parse(raw)
    return SipRequest.parse(raw)