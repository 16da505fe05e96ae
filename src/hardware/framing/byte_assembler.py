"""
Byte Assembler for the UART receive path.

Collects the data bits forwarded by the Frame Sequencer into a register
of data_bits width.  The sequencer supplies the bit position, so the
assembler holds no framing state of its own: bit i lands at position i
(LSB-first) or data_bits-1-i (MSB-first).

The register is cleared on frame_start.  On frame_complete the value is
presented on `data` together with a one-tick data_valid pulse.

Ports
-----
frame_start    : Signal(), in
bit_valid      : Signal(), in  — data bit on bit_in this tick
bit_in         : Signal(), in
bit_index      : Signal(range(MAX_DATA_BITS)), in
frame_complete : Signal(), in
data           : Signal(data_bits), out
data_valid     : Signal(), out — one-tick pulse, coincides with frame_complete
"""

from amaranth import *

from rx_config import BitOrder, MAX_DATA_BITS


class ByteAssembler(Elaboratable):
    def __init__(self, data_bits=8, bit_order=BitOrder.LSB_FIRST):
        self.data_bits = data_bits
        self.bit_order = bit_order

        self.frame_start    = Signal()
        self.bit_valid      = Signal()
        self.bit_in         = Signal()
        self.bit_index      = Signal(range(MAX_DATA_BITS))
        self.frame_complete = Signal()

        self.data       = Signal(data_bits)
        self.data_valid = Signal()

    def bit_position(self, index):
        """Register position of the index-th received data bit."""
        if self.bit_order == BitOrder.MSB_FIRST:
            return self.data_bits - 1 - index
        return index

    def elaborate(self, platform):
        m = Module()

        shift_reg = Signal(self.data_bits)

        with m.If(self.frame_start):
            m.d.sync += shift_reg.eq(0)
        with m.Elif(self.bit_valid):
            with m.Switch(self.bit_index):
                for i in range(self.data_bits):
                    with m.Case(i):
                        m.d.sync += shift_reg[self.bit_position(i)].eq(self.bit_in)

        m.d.comb += [
            self.data.eq(shift_reg),
            self.data_valid.eq(self.frame_complete),
        ]

        return m
