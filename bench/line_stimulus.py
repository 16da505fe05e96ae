"""
Line stimulus builder: frames and line conditions as per-tick levels.

Produces the rx line as a list of 0/1 levels, one per sample tick, for
driving either the hardware simulation or the reference model.  Frame
layout follows the receiver configuration (width, parity, stop bits,
bit order).
"""

import os
import sys

_hw_dir = os.path.join(os.path.dirname(__file__), "..", "src", "hardware")
if _hw_dir not in sys.path:
    sys.path.insert(0, _hw_dir)

from rx_config import ReceiverConfig, Parity, BitOrder, TICKS_PER_BIT


def expected_parity(value, config: ReceiverConfig):
    """Parity bit a transmitter sends for *value*; None without parity."""
    ones = bin(value & ((1 << config.data_bits) - 1)).count("1")
    if config.parity == Parity.EVEN:
        return ones & 1
    if config.parity == Parity.ODD:
        return (ones & 1) ^ 1
    if config.parity == Parity.MARK:
        return 1
    if config.parity == Parity.SPACE:
        return 0
    return None


def encode_frame(value, config: ReceiverConfig, parity_bit=None, stop_levels=None):
    """
    Bit levels of one frame: start, data, parity (if any), stop bits.

    parity_bit overrides the computed parity; stop_levels overrides the
    stop bit levels (one entry per stop bit).
    """
    width = config.data_bits
    data = [(value >> i) & 1 for i in range(width)]
    if config.bit_order == BitOrder.MSB_FIRST:
        data.reverse()

    bits = [0] + data
    if config.parity != Parity.NONE:
        if parity_bit is None:
            parity_bit = expected_parity(value, config)
        bits.append(parity_bit)

    if stop_levels is None:
        stop_levels = [1] * config.stop_bits
    if len(stop_levels) != config.stop_bits:
        raise ValueError(
            f"expected {config.stop_bits} stop levels, got {len(stop_levels)}")
    bits.extend(stop_levels)
    return bits


def bits_to_levels(bits, ticks_per_bit=TICKS_PER_BIT):
    """Hold each bit level for ticks_per_bit sample ticks."""
    levels = []
    for bit in bits:
        levels.extend([bit] * ticks_per_bit)
    return levels


def frame_levels(value, config: ReceiverConfig, **kwargs):
    return bits_to_levels(encode_frame(value, config, **kwargs))


def idle_levels(bit_periods, ticks_per_bit=TICKS_PER_BIT):
    return [1] * (bit_periods * ticks_per_bit)


def low_levels(bit_periods, ticks_per_bit=TICKS_PER_BIT):
    return [0] * (bit_periods * ticks_per_bit)


def stream_levels(values, config: ReceiverConfig, idle_bits=1, lead_bits=2):
    """Frames for every value, separated by idle_bits of idle line."""
    levels = idle_levels(lead_bits)
    for value in values:
        levels.extend(frame_levels(value, config))
        levels.extend(idle_levels(idle_bits))
    return levels


def flip_sample(levels, index):
    """Copy of *levels* with a single sample inverted."""
    corrupted = list(levels)
    corrupted[index] ^= 1
    return corrupted
