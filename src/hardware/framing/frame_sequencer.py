"""
Frame Sequencer for the UART receive path.

Walks each frame bit by bit on the sampler's bit_valid pulses and
decides what every bit means: start, data, parity or stop.

FSM states:
  IDLE    — waiting for a qualified start bit
  START   — start bit in progress
  DATA    — data bits 0..data_bits-1, forwarded to the Byte Assembler
  PARITY  — parity bit, checked against the accumulated data parity
  STOP1   — first stop bit (must be high)
  STOP2   — second stop bit, only with stop_bits=2
  BREAK   — line held in break; left once the filtered level is high

A low stop bit pulses frame_error but the frame still completes and the
byte is delivered.  frame_complete pulses once per frame, on the last
stop bit.

Ports — from Bit Sampler
------------------------
start_valid : Signal(), in
bit_valid   : Signal(), in
bit_value   : Signal(), in

Ports — from Error Classifier / Line Conditioner
------------------------------------------------
break_active : Signal(), in  — force BREAK
level        : Signal(), in  — filtered line level

Ports — to Byte Assembler
-------------------------
frame_start    : Signal(), out — one-tick pulse on IDLE → START
data_bit_valid : Signal(), out — current bit_valid carries a data bit
data_bit       : Signal(), out
bit_index      : Signal(range(data_bits)), out
frame_complete : Signal(), out

Ports — status
--------------
frame_active      : Signal(), out — START..STOP2
in_break          : Signal(), out
parity_error      : Signal(), out — one-tick pulse
frame_error       : Signal(), out — one-tick pulse per low stop bit
byte_parity_error : Signal(), out — this frame failed parity (valid with frame_complete)
byte_frame_error  : Signal(), out — this frame had a low stop bit (valid with frame_complete)
"""

from amaranth import *

from rx_config import Parity, MAX_DATA_BITS


class FrameSequencer(Elaboratable):
    def __init__(self, data_bits=8, parity=Parity.NONE, stop_bits=1):
        self.data_bits = data_bits
        self.parity    = parity
        self.stop_bits = stop_bits

        self.start_valid = Signal()
        self.bit_valid   = Signal()
        self.bit_value   = Signal()

        self.break_active = Signal()
        self.level        = Signal(init=1)

        self.frame_start    = Signal()
        self.data_bit_valid = Signal()
        self.data_bit       = Signal()
        self.bit_index      = Signal(range(MAX_DATA_BITS))
        self.frame_complete = Signal()

        self.frame_active      = Signal()
        self.in_break          = Signal()
        self.parity_error      = Signal()
        self.frame_error       = Signal()
        self.byte_parity_error = Signal()
        self.byte_frame_error  = Signal()

    def _expected_parity(self, data_xor):
        if self.parity == Parity.EVEN:
            return data_xor
        if self.parity == Parity.ODD:
            return ~data_xor
        if self.parity == Parity.MARK:
            return C(1, 1)
        return C(0, 1)

    def elaborate(self, platform):
        m = Module()

        data_bits = self.data_bits

        bit_index  = Signal(range(MAX_DATA_BITS))
        data_xor   = Signal()   # running XOR of the data bits
        parity_bad = Signal()   # latched for the rest of the frame
        stop_bad   = Signal()

        stop_low = self.bit_valid & ~self.bit_value

        m.d.comb += [
            self.bit_index.eq(bit_index),
            self.data_bit.eq(self.bit_value),
            self.byte_parity_error.eq(parity_bad),
            self.byte_frame_error.eq(stop_bad | self.frame_error),
        ]

        with m.FSM():
            with m.State("IDLE"):
                with m.If(self.break_active):
                    m.next = "BREAK"
                with m.Elif(self.start_valid):
                    m.d.comb += self.frame_start.eq(1)
                    m.d.sync += [
                        bit_index.eq(0),
                        data_xor.eq(0),
                        parity_bad.eq(0),
                        stop_bad.eq(0),
                    ]
                    m.next = "START"

            with m.State("START"):
                m.d.comb += self.frame_active.eq(1)
                with m.If(self.break_active):
                    m.next = "BREAK"
                with m.Elif(self.bit_valid):
                    m.next = "DATA"

            with m.State("DATA"):
                m.d.comb += self.frame_active.eq(1)
                with m.If(self.break_active):
                    m.next = "BREAK"
                with m.Elif(self.bit_valid):
                    m.d.comb += self.data_bit_valid.eq(1)
                    m.d.sync += [
                        data_xor.eq(data_xor ^ self.bit_value),
                        bit_index.eq(bit_index + 1),
                    ]
                    with m.If(bit_index == data_bits - 1):
                        if self.parity == Parity.NONE:
                            m.next = "STOP1"
                        else:
                            m.next = "PARITY"

            with m.State("PARITY"):
                m.d.comb += self.frame_active.eq(1)
                with m.If(self.break_active):
                    m.next = "BREAK"
                with m.Elif(self.bit_valid):
                    with m.If(self.bit_value != self._expected_parity(data_xor)):
                        m.d.comb += self.parity_error.eq(1)
                        m.d.sync += parity_bad.eq(1)
                    m.next = "STOP1"

            with m.State("STOP1"):
                m.d.comb += self.frame_active.eq(1)
                with m.If(self.break_active):
                    m.next = "BREAK"
                with m.Elif(self.bit_valid):
                    with m.If(stop_low):
                        m.d.comb += self.frame_error.eq(1)
                        m.d.sync += stop_bad.eq(1)
                    if self.stop_bits == 2:
                        m.next = "STOP2"
                    else:
                        m.d.comb += self.frame_complete.eq(1)
                        m.next = "IDLE"

            with m.State("STOP2"):
                m.d.comb += self.frame_active.eq(1)
                with m.If(self.break_active):
                    m.next = "BREAK"
                with m.Elif(self.bit_valid):
                    with m.If(stop_low):
                        m.d.comb += self.frame_error.eq(1)
                    m.d.comb += self.frame_complete.eq(1)
                    m.next = "IDLE"

            with m.State("BREAK"):
                m.d.comb += self.in_break.eq(1)
                with m.If(self.level & ~self.break_active):
                    m.next = "IDLE"

        return m
