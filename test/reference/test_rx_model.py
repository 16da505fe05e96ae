"""
Tests for the Python reference model of the receive pipeline.

Runs the same scenarios as the hardware testbench through
bench.rx_model, plus the sequencer transition trace.
"""

import sys, os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from bench.rx_model import (
    ReceiverModel, RxEntry, decode_levels, parity_bit,
    Idle, StartBit, DataBits, ParityBit, StopBits, BreakHold,
)
from bench.line_stimulus import (
    frame_levels, idle_levels, low_levels, stream_levels, expected_parity,
)
from rx_config import ReceiverConfig, Parity


def test_model_clean_frame():
    config = ReceiverConfig(parity=Parity.EVEN)
    entries, status = decode_levels(stream_levels([0xA5], config), config)
    assert entries == [RxEntry(0xA5, False, False)]
    assert not status.error_detected
    assert status.empty and status.request_to_send


def test_model_parity_and_framing_errors():
    config = ReceiverConfig(parity=Parity.EVEN)
    bad = expected_parity(0x55, config) ^ 1
    levels = idle_levels(2) + frame_levels(0x55, config, parity_bit=bad) + idle_levels(1)
    levels += frame_levels(0xAA, config, stop_levels=[0]) + idle_levels(2)
    entries, status = decode_levels(levels, config)
    assert entries == [RxEntry(0x55, True, False), RxEntry(0xAA, False, True)]
    assert status.parity_error and status.framing_error and status.error_detected


def test_model_break():
    config = ReceiverConfig()
    model = ReceiverModel(config)
    entries = []
    status = model.status()
    for level in idle_levels(2) + low_levels(12) + idle_levels(3):
        read = status.data_valid
        if read:
            entries.append(status.head)
        status = model.step(level, read_request=read)

    assert entries == []
    assert status.break_detect and status.framing_error
    assert isinstance(model.sequencer.state, Idle)

    status = model.step(1, error_clear=True)
    assert not status.break_detect
    assert not status.error_detected


def test_model_break_clear_waits_for_high_line():
    config = ReceiverConfig()
    model = ReceiverModel(config)
    for level in idle_levels(2) + low_levels(11):
        status = model.step(level)
    assert status.break_detect
    assert isinstance(model.sequencer.state, BreakHold)

    status = model.step(0, error_clear=True)
    assert status.break_detect
    for level in idle_levels(1):
        status = model.step(level)
    assert not status.break_detect
    assert isinstance(model.sequencer.state, Idle)


def test_model_break_frame_not_reported():
    config = ReceiverConfig()
    model = ReceiverModel(config)
    completed = 0
    for level in idle_levels(2) + low_levels(12) + idle_levels(3):
        completed += model.step(level).frame_complete
    assert completed == 0
    assert model.status().break_detect

    for level in stream_levels([0x42], config):
        completed += model.step(level).frame_complete
    assert completed == 1


def test_model_short_low_stop_frames_not_a_break():
    config = ReceiverConfig(data_bits=5)
    frame = frame_levels(0x00, config, stop_levels=[0])
    levels = idle_levels(2) + frame + idle_levels(3) + frame + idle_levels(2)
    entries, status = decode_levels(levels, config)
    assert entries == [RxEntry(0x00, False, True)] * 2
    assert status.framing_error
    assert not status.break_detect


def test_model_overflow():
    config = ReceiverConfig(buffer_depth=4, almost_full_threshold=2)
    values = [0x11, 0x22, 0x33, 0x44, 0x55]
    _, status = decode_levels(stream_levels(values, config), config, drain=False)
    assert status.full and status.count == 4
    assert status.overflow and status.overrun
    assert status.almost_full and not status.request_to_send
    assert not status.error_detected
    assert status.head == RxEntry(0x11, False, False)


def test_model_timeout():
    config = ReceiverConfig(timeout_bits=2)
    _, status = decode_levels(idle_levels(2)[:-1], config)
    assert not status.timeout_detect
    _, status = decode_levels(idle_levels(2), config)
    assert status.timeout_detect and status.error_detected


def test_model_transition_trace():
    config = ReceiverConfig(parity=Parity.EVEN, stop_bits=2)
    trace = []
    model = ReceiverModel(config, on_transition=lambda *t: trace.append(t))
    for level in stream_levels([0x5A], config):
        model.step(level)

    assert [(old, new) for _, old, new in trace] == [
        ("Idle", "StartBit"),
        ("StartBit", "DataBits"),
        ("DataBits", "ParityBit"),
        ("ParityBit", "StopBits"),
        ("StopBits", "Idle"),
    ]
    # Start vote at position 9 of the start bit, then one bit every 16 ticks;
    # position 0 comes two ticks after the edge, which the filter flags
    # two ticks after the raw fall at tick 32
    assert [tick for tick, _, _ in trace] == [45, 51, 179, 195, 227]


def test_model_reset():
    config = ReceiverConfig()
    model = ReceiverModel(config)
    for level in idle_levels(2) + frame_levels(0x0F, config)[:80]:
        model.step(level)
    assert isinstance(model.sequencer.state, DataBits)

    status = model.step(1, reset=True)
    assert isinstance(model.sequencer.state, Idle)
    assert status.empty and not status.error_detected


def test_parity_bit():
    assert parity_bit(Parity.EVEN, 1) == 1
    assert parity_bit(Parity.ODD, 1) == 0
    assert parity_bit(Parity.MARK, 0) == 1
    assert parity_bit(Parity.SPACE, 1) == 0


def test_state_variants_are_values():
    assert DataBits(3, 1) == DataBits(3, 1)
    assert StopBits() != StopBits(parity_error=True)
    assert ParityBit(0) != ParityBit(1)
    assert StartBit() == StartBit()
