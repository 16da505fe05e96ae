"""
Line Conditioner for the UART receive path.

Synchronises the asynchronous rx_pin into the clock domain (2-FF sync)
and removes single-sample glitches with a 3-sample majority filter that
advances on every sample tick.

Ports
-----
rx_pin       : Signal(1), in   — raw serial input (idle high)
sample_tick  : Signal(),  in   — oversample strobe (16 per bit period)
level        : Signal(1), out  — filtered line level (idle high)
falling_edge : Signal(),  out  — pulsed on a sample tick when the filtered
                                 level is high and the newest synchronised
                                 sample is low
"""

from amaranth import *


def majority(a, b, c):
    """2-of-3 vote."""
    return (a & b) | (a & c) | (b & c)


class LineConditioner(Elaboratable):
    def __init__(self):
        self.rx_pin       = Signal(init=1)
        self.sample_tick  = Signal()
        self.level        = Signal(init=1)
        self.falling_edge = Signal()

    def elaborate(self, platform):
        m = Module()

        rx_sync0 = Signal(init=1)
        rx_sync1 = Signal(init=1)
        m.d.sync += [
            rx_sync0.eq(self.rx_pin),
            rx_sync1.eq(rx_sync0),
        ]

        # The two samples preceding the newest one; together with rx_sync1
        # they form the 3-sample filter window.
        history = Signal(2, init=0b11)

        with m.If(self.sample_tick):
            m.d.sync += [
                history.eq(Cat(rx_sync1, history[0])),
                self.level.eq(majority(rx_sync1, history[0], history[1])),
            ]

        m.d.comb += self.falling_edge.eq(
            self.sample_tick & self.level & ~rx_sync1)

        return m
