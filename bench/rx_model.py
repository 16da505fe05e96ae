"""
Python reference model of the UART receive pipeline.

Mirrors the Amaranth receiver tick for tick, without the simulator.
Each component is a small state object whose step() returns the
outputs that component presents during the current tick and then
advances its registers, so components are stepped in dependency order:

    Conditioner → Sampler → Sequencer → Assembler → Buffer / Classifier

Registered signals that feed backwards (sequencer state into the
sampler, break_active into the sequencer) are read before anything is
stepped, exactly as a register would be.

The sequencer state is one of a closed set of frozen variants (Idle,
StartBit, DataBits, ParityBit, StopBits, BreakHold), each carrying only
the fields that state needs.
"""

import os
import sys
from collections import deque, namedtuple
from dataclasses import dataclass, field

_hw_dir = os.path.join(os.path.dirname(__file__), "..", "src", "hardware")
if _hw_dir not in sys.path:
    sys.path.insert(0, _hw_dir)

from rx_config import ReceiverConfig, Parity, BitOrder, TICKS_PER_BIT, rts_level


VOTE_POSITIONS = (7, 8, 9)
LAST_POSITION = TICKS_PER_BIT - 1
EARLY_EDGE_FIRST = VOTE_POSITIONS[-1] + 1
ALIGN_TICKS = 2


RxEntry = namedtuple("RxEntry", ["data", "parity_error", "frame_error"])


def majority(a, b, c):
    return int(a + b + c >= 2)


# ── Line conditioner ───────────────────────────────────────────────────────

@dataclass
class Conditioner:
    sync0: int = 1
    sync1: int = 1
    history: tuple = (1, 1)
    level: int = 1

    def step(self, rx, sample_tick):
        """Returns (level, falling_edge) for this tick."""
        level = self.level
        falling_edge = bool(sample_tick and level and not self.sync1)

        if sample_tick:
            self.level = majority(self.sync1, *self.history)
            self.history = (self.sync1, self.history[0])
        self.sync1 = self.sync0
        self.sync0 = int(rx)
        return level, falling_edge


# ── Bit sampler ────────────────────────────────────────────────────────────

SamplerOutputs = namedtuple("SamplerOutputs", ["start_valid", "bit_valid", "bit_value"])


@dataclass
class Sampler:
    aligning: bool = False
    timing: bool = False
    counter: int = 0
    votes: list = field(default_factory=lambda: [0, 0])
    sampled: int = 0
    first_period: bool = False
    edge_seen: bool = False
    edge_age: int = 0

    def step(self, sample_tick, level, falling_edge, final_bit, inhibit):
        """
        final_bit: the sequencer is on the last stop bit, so a bit_valid
        this tick ends the frame.
        """
        start_valid = False
        bit_valid = False
        bit_value = self.sampled

        if self.aligning:
            if inhibit:
                self.aligning = False
            elif sample_tick:
                self.aligning = False
                self.timing = True
                self.counter = 0
                self.first_period = True
                self.edge_seen = False
            return SamplerOutputs(start_valid, bit_valid, bit_value)

        if not self.timing:
            if sample_tick and falling_edge and not inhibit:
                self.aligning = True
            return SamplerOutputs(start_valid, bit_valid, bit_value)

        if inhibit:
            self.timing = False
            return SamplerOutputs(start_valid, bit_valid, bit_value)

        if not sample_tick:
            return SamplerOutputs(start_valid, bit_valid, bit_value)

        pos = self.counter
        edge_seen, edge_age = self.edge_seen, self.edge_age
        self.counter = (pos + 1) % TICKS_PER_BIT

        if edge_seen:
            self.edge_age = (edge_age + 1) % TICKS_PER_BIT
        elif falling_edge and pos >= EARLY_EDGE_FIRST:
            self.edge_seen = True
            self.edge_age = 1

        if pos == VOTE_POSITIONS[0]:
            self.votes[0] = level
        elif pos == VOTE_POSITIONS[1]:
            self.votes[1] = level
        elif pos == VOTE_POSITIONS[2]:
            vote = majority(self.votes[0], self.votes[1], level)
            self.sampled = vote
            if self.first_period:
                if vote:
                    self.timing = False
                else:
                    start_valid = True
        elif pos == LAST_POSITION:
            bit_valid = True
            self.counter = 0
            self.first_period = False
            self.edge_seen = False
            if final_bit:
                if edge_seen:
                    self.counter = edge_age + 1 - ALIGN_TICKS
                    self.first_period = True
                elif falling_edge:
                    self.timing = False
                    self.aligning = True
                else:
                    self.timing = False

        return SamplerOutputs(start_valid, bit_valid, bit_value)


# ── Frame sequencer ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class StartBit:
    pass


@dataclass(frozen=True)
class DataBits:
    index: int = 0
    data_xor: int = 0


@dataclass(frozen=True)
class ParityBit:
    data_xor: int


@dataclass(frozen=True)
class StopBits:
    index: int = 0
    parity_error: bool = False
    frame_error: bool = False


@dataclass(frozen=True)
class BreakHold:
    pass


ACTIVE_STATES = (StartBit, DataBits, ParityBit, StopBits)


@dataclass
class SequencerOutputs:
    frame_start: bool = False
    data_bit_valid: bool = False
    data_bit: int = 0
    bit_index: int = 0
    frame_complete: bool = False
    frame_active: bool = False
    in_break: bool = False
    parity_error: bool = False
    frame_error: bool = False
    byte_parity_error: bool = False
    byte_frame_error: bool = False


def parity_bit(parity, data_xor):
    """Parity bit expected after data whose bits XOR to data_xor."""
    if parity == Parity.EVEN:
        return data_xor
    if parity == Parity.ODD:
        return data_xor ^ 1
    if parity == Parity.MARK:
        return 1
    return 0


class Sequencer:
    def __init__(self, config: ReceiverConfig):
        self.config = config
        self.state = Idle()

    @property
    def in_break(self):
        return isinstance(self.state, BreakHold)

    @property
    def final_bit(self):
        return (isinstance(self.state, StopBits)
                and self.state.index == self.config.stop_bits - 1)

    def step(self, start_valid, bit_valid, bit_value, break_active, level):
        cfg = self.config
        st = self.state
        out = SequencerOutputs(
            frame_active=isinstance(st, ACTIVE_STATES),
            in_break=isinstance(st, BreakHold),
            data_bit=bit_value,
        )
        new = st

        if isinstance(st, Idle):
            if break_active:
                new = BreakHold()
            elif start_valid:
                out.frame_start = True
                new = StartBit()
        elif isinstance(st, BreakHold):
            if level and not break_active:
                new = Idle()
        elif break_active:
            new = BreakHold()
        elif not bit_valid:
            pass
        elif isinstance(st, StartBit):
            new = DataBits()
        elif isinstance(st, DataBits):
            out.data_bit_valid = True
            out.bit_index = st.index
            data_xor = st.data_xor ^ bit_value
            if st.index < cfg.data_bits - 1:
                new = DataBits(st.index + 1, data_xor)
            elif cfg.parity == Parity.NONE:
                new = StopBits()
            else:
                new = ParityBit(data_xor)
        elif isinstance(st, ParityBit):
            bad = bit_value != parity_bit(cfg.parity, st.data_xor)
            out.parity_error = bad
            new = StopBits(parity_error=bad)
        elif isinstance(st, StopBits):
            low = not bit_value
            out.frame_error = low
            frame_error = st.frame_error or low
            if st.index == cfg.stop_bits - 1:
                out.frame_complete = True
                out.byte_parity_error = st.parity_error
                out.byte_frame_error = frame_error
                new = Idle()
            else:
                new = StopBits(st.index + 1, st.parity_error, frame_error)

        self.state = new
        return out


# ── Byte assembler ─────────────────────────────────────────────────────────

class Assembler:
    def __init__(self, config: ReceiverConfig):
        self.config = config
        self.register = 0

    def step(self, frame_start, bit_valid, bit_in, bit_index, frame_complete):
        """Returns (data, data_valid) for this tick."""
        data = self.register
        if frame_start:
            self.register = 0
        elif bit_valid:
            pos = bit_index
            if self.config.bit_order == BitOrder.MSB_FIRST:
                pos = self.config.data_bits - 1 - bit_index
            if bit_in:
                self.register |= 1 << pos
            else:
                self.register &= ~(1 << pos)
        return data, frame_complete


# ── Receive buffer ─────────────────────────────────────────────────────────

class Buffer:
    def __init__(self, depth, almost_full_threshold):
        self.depth = depth
        self.almost_full_threshold = almost_full_threshold
        self.entries = deque()
        self.overflow = False

    @property
    def count(self):
        return len(self.entries)

    @property
    def head(self):
        return self.entries[0] if self.entries else None

    def step(self, push_valid, entry, pop, clear):
        """Returns True when this tick's push was dropped (overrun)."""
        do_pop = pop and self.count > 0
        do_push = push_valid and (self.count < self.depth or do_pop)
        overrun = push_valid and not do_push and not clear

        if clear:
            self.entries.clear()
            self.overflow = False
            return overrun

        if overrun:
            self.overflow = True
        if do_pop:
            self.entries.popleft()
        if do_push:
            self.entries.append(entry)
        return overrun


# ── Error classifier ───────────────────────────────────────────────────────

class Classifier:
    def __init__(self, config: ReceiverConfig):
        self.break_bits = config.break_bits
        self.timeout_limit = config.timeout_ticks - 1

        self.framing_error = False
        self.parity_error = False
        self.overrun = False
        self.break_detect = False
        self.timeout_detect = False
        self.break_active = False

        self.low_count = 0
        self.armed = False
        self.active_prev = False
        self.clear_queued = False
        self.idle_count = 0
        self.level_prev = 1

    @property
    def error_detected(self):
        return (self.framing_error or self.parity_error
                or self.break_detect or self.timeout_detect)

    def break_pending(self, bit_valid, frame_active, bit_value):
        low = bit_valid and frame_active and not bit_value
        high = bit_valid and frame_active and bit_value
        return ((self.armed and not high)
                or (low and self.low_count >= self.break_bits - 1))

    def step(self, sample_tick, level, frame_active, bit_valid, bit_value,
             frame_error, parity_error, overrun, error_clear):
        low = bit_valid and frame_active and not bit_value
        high = bit_valid and frame_active and bit_value
        frame_ended = self.active_prev and not frame_active

        framing, parity, over, timeout = (
            self.framing_error, self.parity_error, self.overrun, self.timeout_detect)
        if error_clear:
            framing = parity = over = timeout = False
        framing = framing or frame_error
        parity = parity or parity_error
        over = over or overrun

        low_count, armed = self.low_count, self.armed
        if high:
            low_count, armed = 0, False
        elif low and self.low_count < self.break_bits:
            low_count += 1
            if self.low_count == self.break_bits - 1:
                armed = True

        detect, queued, active = self.break_detect, self.clear_queued, self.break_active
        if error_clear and self.break_detect and not level:
            queued = True
        if (error_clear or self.clear_queued) and level:
            detect, queued = False, False
        if self.break_active and level:
            active = False
        if frame_ended:
            if self.armed:
                detect, active, queued = True, True, False
            low_count, armed = 0, False

        idle_count, level_prev = self.idle_count, self.level_prev
        if sample_tick:
            level_prev = level
            if frame_active or level != self.level_prev:
                idle_count = 0
            elif self.idle_count == self.timeout_limit:
                timeout = True
            else:
                idle_count += 1

        self.framing_error, self.parity_error, self.overrun = framing, parity, over
        self.timeout_detect = timeout
        self.low_count, self.armed = low_count, armed
        self.break_detect, self.clear_queued, self.break_active = detect, queued, active
        self.idle_count, self.level_prev = idle_count, level_prev
        self.active_prev = frame_active


# ── Receiver ───────────────────────────────────────────────────────────────

@dataclass
class RxStatus:
    head: RxEntry = None
    data_valid: bool = False
    count: int = 0
    empty: bool = True
    full: bool = False
    almost_full: bool = False
    overflow: bool = False
    request_to_send: bool = True
    framing_error: bool = False
    parity_error: bool = False
    overrun: bool = False
    break_detect: bool = False
    timeout_detect: bool = False
    error_detected: bool = False
    frame_complete: bool = False   # pulsed during the step that returned this


class ReceiverModel:
    """
    Tick-level receiver model.

    on_transition, if given, is called as on_transition(tick, old, new)
    with the sequencer state names whenever the sequencer changes state.
    """

    def __init__(self, config: ReceiverConfig = None, on_transition=None):
        self.config = config or ReceiverConfig()
        self.on_transition = on_transition
        self.ticks = 0
        self._build()

    def _build(self):
        cfg = self.config
        self.conditioner = Conditioner()
        self.sampler = Sampler()
        self.sequencer = Sequencer(cfg)
        self.assembler = Assembler(cfg)
        self.buffer = Buffer(cfg.buffer_depth, cfg.almost_full_threshold)
        self.classifier = Classifier(cfg)

    def status(self, frame_complete=False):
        buf, cls = self.buffer, self.classifier
        return RxStatus(
            head=buf.head,
            data_valid=buf.count > 0,
            count=buf.count,
            empty=buf.count == 0,
            full=buf.count == buf.depth,
            almost_full=buf.count > buf.almost_full_threshold,
            overflow=buf.overflow,
            request_to_send=buf.count < rts_level(buf.depth),
            framing_error=cls.framing_error,
            parity_error=cls.parity_error,
            overrun=cls.overrun,
            break_detect=cls.break_detect,
            timeout_detect=cls.timeout_detect,
            error_detected=cls.error_detected,
            frame_complete=frame_complete,
        )

    def step(self, rx, sample_tick=True, error_clear=False, buffer_clear=False,
             read_request=False, reset=False):
        """Advance one clock tick; returns the status after the tick."""
        cond, samp, seq = self.conditioner, self.sampler, self.sequencer
        asm, buf, cls = self.assembler, self.buffer, self.classifier

        # Registered feedback, read before any component advances
        break_active = cls.break_active
        final_bit = seq.final_bit and not break_active
        inhibit = seq.in_break
        old_state = seq.state

        level, falling_edge = cond.step(rx, sample_tick)
        s = samp.step(sample_tick, level, falling_edge, final_bit, inhibit)
        q = seq.step(s.start_valid, s.bit_valid, s.bit_value, break_active, level)
        data, data_valid = asm.step(q.frame_start, q.data_bit_valid, q.data_bit,
                                    q.bit_index, q.frame_complete)

        pending = cls.break_pending(s.bit_valid, q.frame_active, s.bit_value)
        entry = RxEntry(data, q.byte_parity_error, q.byte_frame_error)
        overrun = buf.step(data_valid and not pending, entry, read_request, buffer_clear)
        cls.step(sample_tick, level, q.frame_active, s.bit_valid, s.bit_value,
                 q.frame_error, q.parity_error, overrun, error_clear)

        if self.on_transition is not None and type(seq.state) is not type(old_state):
            self.on_transition(self.ticks, type(old_state).__name__,
                               type(seq.state).__name__)
        self.ticks += 1

        if reset:
            self._build()
        return self.status(frame_complete=q.frame_complete and not pending)


def decode_levels(levels, config: ReceiverConfig = None, drain=True):
    """
    Run *levels* (one per tick, every tick a sample tick) through a fresh
    model.  With drain=True the buffer is read whenever it holds data.
    Returns (entries, final RxStatus).
    """
    model = ReceiverModel(config)
    entries = []
    status = model.status()
    for level in levels:
        read = drain and status.data_valid
        if read:
            entries.append(status.head)
        status = model.step(level, read_request=read)
    return entries, status
