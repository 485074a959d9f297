"""G.711 A-law / µ-law conversion, mono audio frames and RTP packet detection."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class G711Codec(enum.Enum):
    """The two G.711 companding variants."""

    ALAW = "alaw"
    ULAW = "ulaw"


def _alaw_entry(value: int) -> int:
    value ^= 0x55
    magnitude = (value & 0x0F) << 4
    segment = (value & 0x70) >> 4
    if segment == 0:
        magnitude += 8
    else:
        magnitude = (magnitude + 0x108) << (segment - 1)
    return magnitude if value & 0x80 else -magnitude


def _ulaw_entry(value: int) -> int:
    value = ~value & 0xFF
    magnitude = ((value & 0x0F) << 3) + 0x84
    magnitude <<= (value & 0x70) >> 4
    return 0x84 - magnitude if value & 0x80 else magnitude - 0x84


_ALAW_TO_LINEAR = tuple(_alaw_entry(v) for v in range(256))
_ULAW_TABLE = [_ulaw_entry(v) for v in range(256)]
_ULAW_TABLE[0x7F] = -1
_ULAW_TO_LINEAR = tuple(_ULAW_TABLE)


def alaw_to_linear(value: int) -> int:
    """Convert an 8-bit A-law value to a 16-bit linear PCM sample."""
    return _ALAW_TO_LINEAR[value & 0xFF]


def ulaw_to_linear(value: int) -> int:
    """Convert an 8-bit µ-law value to a 16-bit linear PCM sample."""
    return _ULAW_TO_LINEAR[value & 0xFF]


def linear_to_alaw(sample: int) -> int:
    """Convert a 16-bit linear PCM sample to an 8-bit A-law value."""
    sign = 0x80 if sample < 0 else 0
    pcm = min(-sample if sign else sample, 0x7FFF)
    exponent = 7
    mask = 0x4000
    while pcm & mask == 0 and exponent > 0:
        exponent -= 1
        mask >>= 1
    shift = 4 if exponent == 0 else exponent + 3
    mantissa = (pcm >> shift) & 0x0F
    return (sign | exponent << 4 | mantissa) ^ 0xD5


def linear_to_ulaw(sample: int) -> int:
    """Convert a 16-bit linear PCM sample to an 8-bit µ-law value."""
    sign = 0x80 if sample < 0 else 0
    pcm = min(-sample if sign else sample, 32635) + 0x84
    exponent = 7
    mask = 0x4000
    while pcm & mask == 0:
        exponent -= 1
        mask >>= 1
    mantissa = (pcm >> (exponent + 3)) & 0x0F
    return ~(sign | exponent << 4 | mantissa) & 0xFF


@dataclass
class AudioFrame:
    """A mono frame of 16-bit samples with a fixed capacity."""

    samples: list[int] = field(default_factory=list)
    sample_rate: int = 8000
    capacity: int = 160

    def __post_init__(self) -> None:
        if len(self.samples) > self.capacity:
            raise ValueError(f"frame holds at most {self.capacity} samples, got {len(self.samples)}")

    def __len__(self) -> int:
        return len(self.samples)


class G711Encoder:
    """Encodes 8 kHz frames to G.711 payloads."""

    def __init__(self, codec: G711Codec) -> None:
        self.codec = codec

    def encode(self, frame: AudioFrame) -> bytes:
        convert = linear_to_alaw if self.codec is G711Codec.ALAW else linear_to_ulaw
        return bytes(convert(sample) for sample in frame.samples)


class G711Decoder:
    """Decodes G.711 payloads to 8 kHz frames."""

    FRAME_CAPACITY = 160

    def __init__(self, codec: G711Codec) -> None:
        self.codec = codec

    def decode(self, payload: bytes) -> AudioFrame:
        convert = alaw_to_linear if self.codec is G711Codec.ALAW else ulaw_to_linear
        return AudioFrame(
            samples=[convert(b) for b in payload],
            sample_rate=8000,
            capacity=self.FRAME_CAPACITY,
        )


def is_rtp(packet: bytes) -> bool:
    """Tell RTP (version 2, not RTCP-looking) packets apart by their first byte."""
    return len(packet) >= 12 and 127 < packet[0] < 192