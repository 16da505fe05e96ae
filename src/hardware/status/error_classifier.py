"""
Error Classifier for the UART receive path.

Turns the one-tick error pulses of the receive pipeline into sticky
status flags and derives the two link-level conditions, break and idle
timeout, from the filtered line and the sequencer's frame activity.

Flags
-----
framing_error  — latched on a low stop bit
parity_error   — latched on a parity mismatch
overrun        — latched when the receive buffer dropped a byte
break_detect   — line held low through a whole frame (see below)
timeout_detect — no frame and no line transition for timeout_bits periods

All flags clear only on error_clear.  A pulse arriving on the same tick
as error_clear wins.

Break
-----
Low bit samples (taken on bit_valid while a frame is active) are
counted; any high sample, and the end of every frame, resets the count.
Reaching break_bits arms a potential break, which is confirmed on the
tick frame_active falls.  A frame with fewer than break_bits bit
samples can never arm one.
break_active follows the live condition (set on confirmation, dropped
once the line is high again) and is what the sequencer obeys.
break_detect is only cleared by error_clear with the line high; a clear
issued while the line is still low takes effect when it returns high.

A line held low outside any frame is not a break: it shows up as a
timeout.

Ports
-----
sample_tick     : Signal(), in
level           : Signal(), in  — filtered line level
frame_active    : Signal(), in
bit_valid       : Signal(), in
bit_value       : Signal(), in
frame_error_in  : Signal(), in
parity_error_in : Signal(), in
overrun_in      : Signal(), in
error_clear     : Signal(), in
break_active    : Signal(), out
break_pending   : Signal(), out — current frame is a break, do not deliver it
error_detected  : Signal(), out
"""

from amaranth import *

from rx_config import TICKS_PER_BIT


DEFAULT_BREAK_BITS = 10
DEFAULT_TIMEOUT_BITS = 40


class ErrorClassifier(Elaboratable):
    def __init__(self, break_bits=DEFAULT_BREAK_BITS,
                 timeout_bits=DEFAULT_TIMEOUT_BITS,
                 ticks_per_bit=TICKS_PER_BIT):
        self.break_bits    = break_bits
        self.timeout_bits  = timeout_bits
        self.ticks_per_bit = ticks_per_bit

        self.sample_tick     = Signal()
        self.level           = Signal(init=1)
        self.frame_active    = Signal()
        self.bit_valid       = Signal()
        self.bit_value       = Signal()
        self.frame_error_in  = Signal()
        self.parity_error_in = Signal()
        self.overrun_in      = Signal()
        self.error_clear     = Signal()

        self.framing_error  = Signal()
        self.parity_error   = Signal()
        self.overrun        = Signal()
        self.break_detect   = Signal()
        self.timeout_detect = Signal()
        self.error_detected = Signal()
        self.break_active   = Signal()
        self.break_pending  = Signal()

    @property
    def timeout_limit(self):
        """Idle count at which the next idle tick raises timeout_detect."""
        return self.ticks_per_bit * self.timeout_bits - 1

    def elaborate(self, platform):
        m = Module()

        # ── Framing / parity / overrun ─────────────────────────────────────
        with m.If(self.error_clear):
            m.d.sync += [
                self.framing_error.eq(0),
                self.parity_error.eq(0),
                self.overrun.eq(0),
                self.timeout_detect.eq(0),
            ]
        with m.If(self.frame_error_in):
            m.d.sync += self.framing_error.eq(1)
        with m.If(self.parity_error_in):
            m.d.sync += self.parity_error.eq(1)
        with m.If(self.overrun_in):
            m.d.sync += self.overrun.eq(1)

        # ── Break ──────────────────────────────────────────────────────────
        break_bits = self.break_bits

        low_count    = Signal(range(break_bits + 1))
        armed        = Signal()
        active_prev  = Signal()
        clear_queued = Signal()

        low_sample = self.bit_valid & self.frame_active & ~self.bit_value
        high_sample = self.bit_valid & self.frame_active & self.bit_value

        m.d.sync += active_prev.eq(self.frame_active)
        frame_ended = active_prev & ~self.frame_active

        # A high stop sample disarms on this same tick
        m.d.comb += self.break_pending.eq(
            (armed & ~high_sample) | (low_sample & (low_count >= break_bits - 1)))

        with m.If(high_sample):
            m.d.sync += [
                low_count.eq(0),
                armed.eq(0),
            ]
        with m.Elif(low_sample & (low_count < break_bits)):
            m.d.sync += low_count.eq(low_count + 1)
            with m.If(low_count == break_bits - 1):
                m.d.sync += armed.eq(1)

        # error_clear with the line still low is held until it goes high
        with m.If(self.error_clear & self.break_detect & ~self.level):
            m.d.sync += clear_queued.eq(1)
        with m.If((self.error_clear | clear_queued) & self.level):
            m.d.sync += [
                self.break_detect.eq(0),
                clear_queued.eq(0),
            ]

        with m.If(self.break_active & self.level):
            m.d.sync += self.break_active.eq(0)

        # The count never spans two frames
        with m.If(frame_ended):
            m.d.sync += [
                low_count.eq(0),
                armed.eq(0),
            ]
            with m.If(armed):
                m.d.sync += [
                    self.break_detect.eq(1),
                    self.break_active.eq(1),
                    clear_queued.eq(0),
                ]

        # ── Idle timeout ───────────────────────────────────────────────────
        limit = self.timeout_limit

        idle_count = Signal(range(limit + 1))
        level_prev = Signal(init=1)

        with m.If(self.sample_tick):
            m.d.sync += level_prev.eq(self.level)
            with m.If(self.frame_active | (self.level != level_prev)):
                m.d.sync += idle_count.eq(0)
            with m.Elif(idle_count == limit):
                m.d.sync += self.timeout_detect.eq(1)
            with m.Else():
                m.d.sync += idle_count.eq(idle_count + 1)

        # ── Aggregate ──────────────────────────────────────────────────────
        m.d.comb += self.error_detected.eq(
            self.framing_error | self.parity_error |
            self.break_detect | self.timeout_detect)

        return m
