"""
Receiver configuration.

Every receiver parameter is fixed at elaboration time.  ReceiverConfig
validates itself on construction so that a bad combination fails before
any hardware is built.

Frame layout
------------
    start(0) | data[data_bits] | parity? | stop(1) x stop_bits
"""

import enum
from dataclasses import dataclass


# Oversampling ratio: sample ticks per bit period (fixed).
TICKS_PER_BIT = 16

MIN_DATA_BITS = 5
MAX_DATA_BITS = 9


class Parity(enum.Enum):
    NONE  = "none"
    EVEN  = "even"
    ODD   = "odd"
    MARK  = "mark"    # parity bit always 1
    SPACE = "space"   # parity bit always 0


class BitOrder(enum.Enum):
    LSB_FIRST = "lsb"
    MSB_FIRST = "msb"


@dataclass(frozen=True)
class ReceiverConfig:
    data_bits: int = 8
    parity: Parity = Parity.NONE
    stop_bits: int = 1
    bit_order: BitOrder = BitOrder.LSB_FIRST

    buffer_depth: int = 16
    almost_full_threshold: int = None   # default: 75% of buffer_depth

    break_bits: int = 10        # consecutive low bit samples that arm a break
    timeout_bits: int = 40      # idle bit periods before timeout_detect

    def __post_init__(self):
        if not MIN_DATA_BITS <= self.data_bits <= MAX_DATA_BITS:
            raise ValueError(
                f"data_bits must be in {MIN_DATA_BITS}..{MAX_DATA_BITS}, "
                f"got {self.data_bits}")
        if not isinstance(self.parity, Parity):
            raise ValueError(f"Unknown parity mode: {self.parity!r}")
        if self.stop_bits not in (1, 2):
            raise ValueError(f"stop_bits must be 1 or 2, got {self.stop_bits}")
        if not isinstance(self.bit_order, BitOrder):
            raise ValueError(f"Unknown bit order: {self.bit_order!r}")
        if self.almost_full_threshold is None:
            object.__setattr__(self, "almost_full_threshold",
                               default_threshold(self.buffer_depth))
        check_buffer_params(self.buffer_depth, self.almost_full_threshold)
        if self.break_bits < 1:
            raise ValueError(f"break_bits must be positive, got {self.break_bits}")
        if self.timeout_bits < 1:
            raise ValueError(
                f"timeout_bits must be positive, got {self.timeout_bits}")

    @property
    def frame_bits(self):
        """Bit periods in one frame, start and stop bits included."""
        parity_bits = 0 if self.parity is Parity.NONE else 1
        return 1 + self.data_bits + parity_bits + self.stop_bits

    @property
    def timeout_ticks(self):
        return TICKS_PER_BIT * self.timeout_bits


def check_buffer_params(depth, almost_full_threshold):
    """Raise ValueError unless depth is a power of two >= 2 and the
    watermark sits below it."""
    if depth < 2 or depth & (depth - 1):
        raise ValueError(f"buffer depth must be a power of two >= 2, got {depth}")
    if not 0 <= almost_full_threshold < depth:
        raise ValueError(
            f"almost_full_threshold must be in 0..{depth - 1}, "
            f"got {almost_full_threshold}")


def default_threshold(depth):
    """Default almost_full watermark: 75% of depth."""
    return depth * 3 // 4


def rts_level(depth):
    """Lowest occupancy at which request_to_send is withdrawn (75% of depth)."""
    return (3 * depth + 3) // 4
