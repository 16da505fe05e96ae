"""
UART Receiver Top-Level Module.

Wires the receive pipeline together and exposes the receiver's signal
contract:

    rx_pin ──► LineConditioner ──► BitSampler ──► FrameSequencer
                    │                                  │
                    │                            ByteAssembler
                    │                                  │
                    └──────► ErrorClassifier ◄── ReceiveBuffer ──► rx_data

Everything runs in the sync domain.  sample_tick is the 16x oversample
strobe from an external tick generator; hold it high to make every clock
cycle a sample tick.  reset returns every submodule to its initial state
on the same cycle.  A frame that completes a break is neither buffered nor
reported on frame_complete.

Ports — inputs
--------------
rx_pin, sample_tick, reset, error_clear, buffer_clear, read_request

Ports — received data (head of the receive buffer)
--------------------------------------------------
rx_data, rx_parity_error, rx_frame_error, data_valid

Ports — status
--------------
count, empty, full, almost_full, overflow, request_to_send,
framing_error, parity_error, overrun, break_detect, timeout_detect,
error_detected, frame_complete
"""

from amaranth import *

from rx_config import ReceiverConfig
from line.line_conditioner import LineConditioner
from line.bit_sampler import BitSampler
from framing.frame_sequencer import FrameSequencer
from framing.byte_assembler import ByteAssembler
from memory.receive_buffer import ReceiveBuffer
from status.error_classifier import ErrorClassifier


class UARTReceiverTop(Elaboratable):
    def __init__(self, config=None):
        if config is None:
            config = ReceiverConfig()
        self.config = config

        self.conditioner = LineConditioner()
        self.sampler     = BitSampler()
        self.sequencer   = FrameSequencer(data_bits=config.data_bits,
                                          parity=config.parity,
                                          stop_bits=config.stop_bits)
        self.assembler   = ByteAssembler(data_bits=config.data_bits,
                                         bit_order=config.bit_order)
        self.buffer      = ReceiveBuffer(width=config.data_bits,
                                         depth=config.buffer_depth,
                                         almost_full_threshold=config.almost_full_threshold)
        self.classifier  = ErrorClassifier(break_bits=config.break_bits,
                                           timeout_bits=config.timeout_bits)

        # Inputs
        self.rx_pin       = Signal(init=1)   # idle high
        self.sample_tick  = Signal()
        self.reset        = Signal()
        self.error_clear  = Signal()
        self.buffer_clear = Signal()
        self.read_request = Signal()

        # Received data
        self.rx_data         = Signal(config.data_bits)
        self.rx_parity_error = Signal()
        self.rx_frame_error  = Signal()
        self.data_valid      = Signal()

        # Status
        self.count           = Signal(range(config.buffer_depth + 1))
        self.empty           = Signal()
        self.full            = Signal()
        self.almost_full     = Signal()
        self.overflow        = Signal()
        self.request_to_send = Signal()
        self.framing_error   = Signal()
        self.parity_error    = Signal()
        self.overrun         = Signal()
        self.break_detect    = Signal()
        self.timeout_detect  = Signal()
        self.error_detected  = Signal()
        self.frame_complete  = Signal()

    def elaborate(self, platform):
        m = Module()

        cond  = self.conditioner
        samp  = self.sampler
        seq   = self.sequencer
        asm   = self.assembler
        buf   = self.buffer
        cls   = self.classifier

        # ── Instantiate submodules, all under the shared reset ──────────
        m.submodules.conditioner = ResetInserter(self.reset)(cond)
        m.submodules.sampler     = ResetInserter(self.reset)(samp)
        m.submodules.sequencer   = ResetInserter(self.reset)(seq)
        m.submodules.assembler   = ResetInserter(self.reset)(asm)
        m.submodules.buffer      = ResetInserter(self.reset)(buf)
        m.submodules.classifier  = ResetInserter(self.reset)(cls)

        # ── Line → Conditioner ───────────────────────────────────────────
        m.d.comb += [
            cond.rx_pin.eq(self.rx_pin),
            cond.sample_tick.eq(self.sample_tick),
        ]

        # ── Conditioner → BitSampler ─────────────────────────────────────
        m.d.comb += [
            samp.sample_tick.eq(self.sample_tick),
            samp.level.eq(cond.level),
            samp.falling_edge.eq(cond.falling_edge),
            samp.frame_end.eq(seq.frame_complete),
            samp.inhibit.eq(seq.in_break),
        ]

        # ── BitSampler → FrameSequencer ──────────────────────────────────
        m.d.comb += [
            seq.start_valid.eq(samp.start_valid),
            seq.bit_valid.eq(samp.bit_valid),
            seq.bit_value.eq(samp.bit_value),
            seq.break_active.eq(cls.break_active),
            seq.level.eq(cond.level),
        ]

        # ── FrameSequencer → ByteAssembler ───────────────────────────────
        m.d.comb += [
            asm.frame_start.eq(seq.frame_start),
            asm.bit_valid.eq(seq.data_bit_valid),
            asm.bit_in.eq(seq.data_bit),
            asm.bit_index.eq(seq.bit_index),
            asm.frame_complete.eq(seq.frame_complete),
        ]

        # ── ByteAssembler → ReceiveBuffer ────────────────────────────────
        # A frame that completes a break is not data.
        m.d.comb += [
            buf.push_valid.eq(asm.data_valid & ~cls.break_pending),
            buf.push_data.eq(asm.data),
            buf.push_parity_error.eq(seq.byte_parity_error),
            buf.push_frame_error.eq(seq.byte_frame_error),
            buf.pop.eq(self.read_request),
            buf.clear.eq(self.buffer_clear),
        ]

        # ── Pipeline → ErrorClassifier ───────────────────────────────────
        m.d.comb += [
            cls.sample_tick.eq(self.sample_tick),
            cls.level.eq(cond.level),
            cls.frame_active.eq(seq.frame_active),
            cls.bit_valid.eq(samp.bit_valid),
            cls.bit_value.eq(samp.bit_value),
            cls.frame_error_in.eq(seq.frame_error),
            cls.parity_error_in.eq(seq.parity_error),
            cls.overrun_in.eq(buf.overrun),
            cls.error_clear.eq(self.error_clear),
        ]

        # ── Outputs ──────────────────────────────────────────────────────
        m.d.comb += [
            self.rx_data.eq(buf.rd_data),
            self.rx_parity_error.eq(buf.rd_parity_error),
            self.rx_frame_error.eq(buf.rd_frame_error),
            self.data_valid.eq(buf.rd_valid),

            self.count.eq(buf.count),
            self.empty.eq(buf.empty),
            self.full.eq(buf.full),
            self.almost_full.eq(buf.almost_full),
            self.overflow.eq(buf.overflow),
            self.request_to_send.eq(buf.request_to_send),

            self.framing_error.eq(cls.framing_error),
            self.parity_error.eq(cls.parity_error),
            self.overrun.eq(cls.overrun),
            self.break_detect.eq(cls.break_detect),
            self.timeout_detect.eq(cls.timeout_detect),
            self.error_detected.eq(cls.error_detected),
            # A frame that completes a break is not reported
            self.frame_complete.eq(seq.frame_complete & ~cls.break_pending),
        ]

        return m
