import pytest

from chatbridge.detection import Watermark


@pytest.mark.unit
def test_starts_uninitialized():
    watermark = Watermark("messages")

    assert watermark.is_initialized is False
    with pytest.raises(RuntimeError):
        watermark.require()


@pytest.mark.unit
def test_advance_only_moves_forward():
    watermark = Watermark("messages", value=10)

    assert watermark.advance(12) is True
    assert watermark.advance(11) is False
    assert watermark.advance(12) is False
    assert watermark.require() == 12


@pytest.mark.unit
def test_reset_replaces_value():
    watermark = Watermark("tapbacks", value=50)

    watermark.reset(3)

    assert watermark.value == 3


@pytest.mark.unit
def test_zero_is_a_valid_baseline():
    watermark = Watermark("messages", value=0)

    assert watermark.is_initialized is True
    assert watermark.require() == 0
