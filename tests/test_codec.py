import pytest

from siptransport.codec import (
    AudioFrame,
    G711Codec,
    G711Decoder,
    G711Encoder,
    alaw_to_linear,
    is_rtp,
    linear_to_alaw,
    linear_to_ulaw,
    ulaw_to_linear,
)


def test_i16_to_alaw():
    assert linear_to_alaw(0) == 213
    assert linear_to_alaw(1) == 213
    assert linear_to_alaw(2) == 213
    assert linear_to_alaw(-3) == 85
    assert linear_to_alaw(-4) == 85


def test_i16_to_ulaw():
    assert linear_to_ulaw(0) == 0xFF
    assert linear_to_ulaw(-1) == 0x7F


def test_alaw_to_i16():
    assert alaw_to_linear(213) == 8
    assert alaw_to_linear(85) == -8


def test_ulaw_to_i16():
    assert ulaw_to_linear(0xFF) == 0
    assert ulaw_to_linear(0x7F) == -1


def test_table_edges_match_source_tables():
    assert alaw_to_linear(0) == -5504
    assert ulaw_to_linear(0) == -32124
    assert ulaw_to_linear(128) == 32124


@pytest.mark.parametrize("value", range(256))
def test_alaw_round_trip(value):
    assert linear_to_alaw(alaw_to_linear(value)) == value


@pytest.mark.parametrize("value", range(256))
def test_ulaw_round_trip(value):
    assert linear_to_ulaw(ulaw_to_linear(value)) == value


def test_extreme_samples_clip():
    assert 0 <= linear_to_alaw(-32768) <= 255
    assert linear_to_ulaw(-32768) == linear_to_ulaw(-32635)


@pytest.mark.parametrize("codec", list(G711Codec))
def test_encoder_decoder_round_trip(codec):
    payload = bytes(range(160))
    frame = G711Decoder(codec).decode(payload)
    assert len(frame) == 160
    assert frame.sample_rate == 8000
    assert G711Encoder(codec).encode(frame) == payload


def test_decoder_rejects_oversized_payload():
    with pytest.raises(ValueError):
        G711Decoder(G711Codec.ALAW).decode(bytes(161))


def test_audio_frame_capacity():
    with pytest.raises(ValueError):
        AudioFrame(samples=[0] * 3, capacity=2)


def test_is_rtp():
    assert is_rtp(bytes([0x80]) + bytes(11))
    assert not is_rtp(bytes([0x80]) + bytes(10))
    assert not is_rtp(bytes([0xC8]) + bytes(11))
    assert not is_rtp(bytes([0x7F]) + bytes(11))