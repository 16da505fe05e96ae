"""
Receive Buffer for the UART receive path.

Decouples byte production (Byte Assembler) from consumption (host reads).
Synchronous circular-buffer FIFO; depth is a power of two so the read
and write pointers wrap by plain truncation.

Each entry packs the decoded value with the frame's error flags:

    data [0:width] | parity_error [width] | frame_error [width+1]

Parameters
----------
width : int
    Data bits per entry (5..9).
depth : int
    Number of entries (power of two, >= 2).
almost_full_threshold : int
    almost_full is asserted while occupancy is above this value.

Ports — push side (from Byte Assembler)
---------------------------------------
push_valid        : Signal(), in
push_data         : Signal(width), in
push_parity_error : Signal(), in
push_frame_error  : Signal(), in

Ports — pop side (to host)
--------------------------
pop             : Signal(), in  — read_request: drop the head entry
clear           : Signal(), in  — discard contents, clear overflow
rd_valid        : Signal(), out — head entry is valid (latched until read)
rd_data         : Signal(width), out
rd_parity_error : Signal(), out
rd_frame_error  : Signal(), out

Ports — status
--------------
count           : Signal(range(depth + 1)), out
empty, full     : Signal(), out
almost_full     : Signal(), out
overflow        : Signal(), out — sticky until clear
overrun         : Signal(), out — one-tick pulse: push dropped
request_to_send : Signal(), out — occupancy below 75% of depth
"""

from amaranth import *

from rx_config import check_buffer_params, default_threshold, rts_level


DEFAULT_BUFFER_DEPTH = 16


class ReceiveBuffer(Elaboratable):
    def __init__(self, width=8, depth=DEFAULT_BUFFER_DEPTH,
                 almost_full_threshold=None):
        if almost_full_threshold is None:
            almost_full_threshold = default_threshold(depth)
        check_buffer_params(depth, almost_full_threshold)

        self.width = width
        self.depth = depth
        self.almost_full_threshold = almost_full_threshold

        # Push side
        self.push_valid        = Signal()
        self.push_data         = Signal(width)
        self.push_parity_error = Signal()
        self.push_frame_error  = Signal()

        # Pop side
        self.pop             = Signal()
        self.clear           = Signal()
        self.rd_valid        = Signal()
        self.rd_data         = Signal(width)
        self.rd_parity_error = Signal()
        self.rd_frame_error  = Signal()

        # Status
        self.count           = Signal(range(depth + 1))
        self.empty           = Signal()
        self.full            = Signal()
        self.almost_full     = Signal()
        self.overflow        = Signal()
        self.overrun         = Signal()
        self.request_to_send = Signal()

    def elaborate(self, platform):
        m = Module()

        width = self.width
        depth = self.depth
        entry_width = width + 2

        entries = Array([Signal(entry_width, name=f"entry_{i}") for i in range(depth)])

        wr_ptr = Signal(range(depth))
        rd_ptr = Signal(range(depth))
        count  = Signal(range(depth + 1))

        m.d.comb += [
            self.count.eq(count),
            self.empty.eq(count == 0),
            self.full.eq(count == depth),
            self.almost_full.eq(count > self.almost_full_threshold),
            self.request_to_send.eq(count < rts_level(depth)),
            self.rd_valid.eq(~self.empty),
        ]

        do_pop  = Signal()
        do_push = Signal()
        m.d.comb += [
            do_pop.eq(self.pop & ~self.empty),
            # A concurrent pop frees the slot this push needs
            do_push.eq(self.push_valid & (~self.full | do_pop)),
            self.overrun.eq(self.push_valid & ~do_push & ~self.clear),
        ]

        push_word = Signal(entry_width)
        head_word = Signal(entry_width)
        m.d.comb += [
            push_word.eq(Cat(self.push_data,
                             self.push_parity_error,
                             self.push_frame_error)),
            head_word.eq(entries[rd_ptr]),
            self.rd_data.eq(head_word[:width]),
            self.rd_parity_error.eq(head_word[width]),
            self.rd_frame_error.eq(head_word[width + 1]),
        ]

        with m.If(self.clear):
            m.d.sync += [
                count.eq(0),
                wr_ptr.eq(0),
                rd_ptr.eq(0),
                self.overflow.eq(0),
            ]
        with m.Else():
            with m.If(self.overrun):
                m.d.sync += self.overflow.eq(1)

            with m.If(do_push):
                m.d.sync += [
                    entries[wr_ptr].eq(push_word),
                    wr_ptr.eq(wr_ptr + 1),
                ]
            with m.If(do_pop):
                m.d.sync += rd_ptr.eq(rd_ptr + 1)

            with m.If(do_push & ~do_pop):
                m.d.sync += count.eq(count + 1)
            with m.Elif(do_pop & ~do_push):
                m.d.sync += count.eq(count - 1)
            # Simultaneous push+pop: count unchanged

        return m
