"""
Bit Sampler for the UART receive path.

Times each bit period from the filtered line level.  A bit period is
TICKS_PER_BIT sample ticks long.  Position 0 comes ALIGN_TICKS sample ticks
after the start edge: the conditioner flags the edge on the raw sample,
while its registered majority at position p covers raw samples p-1, p
and p+1 of the bit.  The level is recorded at positions 7, 8 and 9 and
the 2-of-3 vote is latched at position 9, so a glitch on one of those
samples cannot change the bit.  At the last position bit_valid pulses
and the counter wraps into the next bit period.

The first period after an edge is the start bit: if its vote comes out
high the edge was a glitch, the start is rejected and no bit is
emitted.  Otherwise start_valid pulses at position 9.  A start that is
back high by position 8 always loses the vote.

Timing runs until the frame sequencer reports frame_end on the final
stop bit.  A falling edge seen late in that bit (positions 10..15)
belongs to the next frame's start bit and restarts timing with its
phase preserved.

Ports
-----
sample_tick  : Signal(), in   — oversample strobe
level        : Signal(), in   — filtered line level
falling_edge : Signal(), in   — start edge candidate from the conditioner
frame_end    : Signal(), in   — final stop bit accepted this tick
inhibit      : Signal(), in   — hold idle (line break in progress)
start_valid  : Signal(), out  — one-tick pulse: start bit qualified
bit_valid    : Signal(), out  — one-tick pulse at the end of each bit
bit_value    : Signal(), out  — majority-voted value of the current bit
busy         : Signal(), out  — bit timing is running
"""

from amaranth import *

from rx_config import TICKS_PER_BIT
from .line_conditioner import majority


VOTE_POSITIONS = (7, 8, 9)
LAST_POSITION = TICKS_PER_BIT - 1

# Edges from this position on are taken as the next frame's start bit.
EARLY_EDGE_FIRST = VOTE_POSITIONS[-1] + 1

# Sample ticks from the falling edge to position 0 of the start bit
ALIGN_TICKS = 2


class BitSampler(Elaboratable):
    def __init__(self):
        self.sample_tick  = Signal()
        self.level        = Signal(init=1)
        self.falling_edge = Signal()
        self.frame_end    = Signal()
        self.inhibit      = Signal()

        self.start_valid = Signal()
        self.bit_valid   = Signal()
        self.bit_value   = Signal()
        self.busy        = Signal()

    def elaborate(self, platform):
        m = Module()

        counter      = Signal(range(TICKS_PER_BIT))
        votes        = Signal(2)
        sampled      = Signal()
        first_period = Signal()

        # Start edge of the next frame observed before the current one ended
        edge_seen = Signal()
        edge_age  = Signal(range(TICKS_PER_BIT))

        vote = majority(votes[0], votes[1], self.level)

        m.d.comb += self.bit_value.eq(sampled)

        with m.FSM():
            with m.State("IDLE"):
                with m.If(self.sample_tick & self.falling_edge & ~self.inhibit):
                    m.next = "ALIGN"

            # One sample tick between the edge and position 0
            with m.State("ALIGN"):
                m.d.comb += self.busy.eq(1)
                with m.If(self.inhibit):
                    m.next = "IDLE"
                with m.Elif(self.sample_tick):
                    m.d.sync += [
                        counter.eq(0),
                        first_period.eq(1),
                        edge_seen.eq(0),
                    ]
                    m.next = "TIMING"

            with m.State("TIMING"):
                m.d.comb += self.busy.eq(1)

                with m.If(self.inhibit):
                    m.next = "IDLE"

                with m.Elif(self.sample_tick):
                    m.d.sync += counter.eq(counter + 1)

                    with m.If(edge_seen):
                        m.d.sync += edge_age.eq(edge_age + 1)
                    with m.Elif(self.falling_edge & (counter >= EARLY_EDGE_FIRST)):
                        m.d.sync += [
                            edge_seen.eq(1),
                            edge_age.eq(1),
                        ]

                    with m.Switch(counter):
                        with m.Case(VOTE_POSITIONS[0]):
                            m.d.sync += votes[0].eq(self.level)
                        with m.Case(VOTE_POSITIONS[1]):
                            m.d.sync += votes[1].eq(self.level)
                        with m.Case(VOTE_POSITIONS[2]):
                            m.d.sync += sampled.eq(vote)
                            with m.If(first_period):
                                with m.If(vote):
                                    # Line went back high: glitch, not a start bit
                                    m.next = "IDLE"
                                with m.Else():
                                    m.d.comb += self.start_valid.eq(1)

                        with m.Case(LAST_POSITION):
                            m.d.comb += self.bit_valid.eq(1)
                            m.d.sync += [
                                counter.eq(0),
                                first_period.eq(0),
                                edge_seen.eq(0),
                            ]
                            with m.If(self.frame_end):
                                with m.If(edge_seen):
                                    # edge_age ticks since the edge, ALIGN_TICKS of
                                    # them before the new position 0
                                    m.d.sync += [
                                        counter.eq(edge_age + 1 - ALIGN_TICKS),
                                        first_period.eq(1),
                                    ]
                                with m.Elif(self.falling_edge):
                                    m.next = "ALIGN"
                                with m.Else():
                                    m.next = "IDLE"

        return m
