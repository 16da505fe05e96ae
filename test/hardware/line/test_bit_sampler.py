"""
Testbench for the Bit Sampler.

The filtered level and edge pulse are driven directly; every clock
cycle is a sample tick.  The start edge arrives on cycle 0 and position
0 of the start bit falls ALIGN_TICKS cycles later, so bit n occupies
cycles P0+16n..P0+16n+15.

Verifies:
  1. Qualified start: start_valid at position 9, bit_valid at position 15
     of every bit period, with the majority-voted value.
  2. A single wrong sample among positions 7..9 is outvoted.
  3. Glitch rejection: a start that is high again at position 9 emits
     nothing and returns to idle.
  4. frame_end on the last bit returns the sampler to idle.
  5. A start edge seen late in the last bit restarts timing in phase.
  6. inhibit forces idle and blocks new starts.
  7. A start edge on the frame_end tick itself is aligned like one from idle.
"""

import sys, os

sys.path.insert(
    0,
    os.path.join(os.path.dirname(__file__), "..", "..", "..", "src", "hardware"),
)

from amaranth import *
from amaranth.sim import Simulator

from line.bit_sampler import BitSampler, ALIGN_TICKS


P0 = ALIGN_TICKS


async def _run(ctx, dut, cycles, level_at, edge_at=(0,), frame_end_at=(), inhibit_at=()):
    """
    Drive `cycles` sample ticks.  level_at(c) gives the filtered level
    for cycle c.  Returns per-cycle (start_valid, bit_valid, bit_value, busy).
    """
    trace = []
    for c in range(cycles):
        ctx.set(dut.sample_tick, 1)
        ctx.set(dut.level, level_at(c))
        ctx.set(dut.falling_edge, c in edge_at)
        ctx.set(dut.frame_end, c in frame_end_at)
        ctx.set(dut.inhibit, c in inhibit_at)
        trace.append((
            ctx.get(dut.start_valid),
            ctx.get(dut.bit_valid),
            ctx.get(dut.bit_value),
            ctx.get(dut.busy),
        ))
        await ctx.tick()
    ctx.set(dut.falling_edge, 0)
    ctx.set(dut.frame_end, 0)
    ctx.set(dut.inhibit, 0)
    ctx.set(dut.level, 1)
    return trace


def _pulses(trace, column):
    return [c for c, row in enumerate(trace) if row[column]]


def test_bit_sampler_timing():
    dut = BitSampler()
    sim = Simulator(dut)
    sim.add_clock(1e-6)

    # start(0), 1, 0, 1 then the line stays high
    bits = [0, 1, 0, 1]

    def level_at(c):
        n = max(c - P0, 0) // 16
        return bits[n] if n < len(bits) else 1

    async def testbench(ctx):
        # ---- Test 1: qualified start and per-bit pulses ----
        last = P0 + 16 * len(bits) - 1
        trace = await _run(ctx, dut, last + 1, level_at, frame_end_at=(last,))
        assert trace[1][3] == 1, "Test 1 FAIL: sampler should be busy while aligning"
        assert _pulses(trace, 0) == [P0 + 9], (
            f"Test 1 FAIL: start_valid at {_pulses(trace, 0)}, expected [{P0 + 9}]"
        )
        expected = [P0 + 16 * n + 15 for n in range(len(bits))]
        assert _pulses(trace, 1) == expected, (
            f"Test 1 FAIL: bit_valid at {_pulses(trace, 1)}, expected {expected}"
        )
        values = [trace[c][2] for c in expected]
        assert values == bits, f"Test 1 FAIL: sampled {values}, expected {bits}"
        print("Test 1 PASSED: start_valid at 9, bit_valid at 15 with voted bits.")

        # ---- Test 4: frame_end on the last bit returned the sampler to idle ----
        for _ in range(3):
            assert ctx.get(dut.busy) == 0, "Test 4 FAIL: sampler should be idle"
            await ctx.tick()
        print("Test 4 PASSED: frame_end returns to idle.")

    sim.add_testbench(testbench)
    sim.run()


def test_bit_sampler_vote():
    dut = BitSampler()
    sim = Simulator(dut)
    sim.add_clock(1e-6)

    async def testbench(ctx):
        # ---- Test 2: one wrong sample among 7..9 is outvoted ----
        for bad in (7, 8, 9):
            # Start bit low except at `bad`; data bit high except at 16+bad
            def level_at(c, bad=bad):
                q = c - P0
                if q < 16:
                    return int(q == bad)
                return int(q != 16 + bad)

            last = P0 + 31
            trace = await _run(ctx, dut, last + 1, level_at, frame_end_at=(last,))
            assert _pulses(trace, 0) == [P0 + 9], (
                f"Test 2 FAIL: glitch at {bad} broke start qualification"
            )
            assert trace[last][1] == 1 and trace[last][2] == 1, (
                f"Test 2 FAIL: glitch at {bad} flipped the data bit"
            )
            await ctx.tick()
        print("Test 2 PASSED: single sample at 7..9 outvoted.")

        # ---- Test 3: glitch rejection ----
        def glitch(c):
            return 0 if c < P0 + 4 else 1

        trace = await _run(ctx, dut, 48, glitch)
        assert _pulses(trace, 0) == [], "Test 3 FAIL: glitch qualified as start"
        assert _pulses(trace, 1) == [], "Test 3 FAIL: glitch emitted a bit"
        assert trace[P0 + 9][3] == 1 and trace[P0 + 10][3] == 0, (
            "Test 3 FAIL: sampler should give up at position 9"
        )
        print("Test 3 PASSED: glitch start rejected at position 9.")

    sim.add_testbench(testbench)
    sim.run()


def test_bit_sampler_early_edge():
    dut = BitSampler()
    sim = Simulator(dut)
    sim.add_clock(1e-6)

    # Frame A: start + one stop bit, positions at cycles P0..P0+31.  The
    # next start edge arrives at cycle 30, position 12 of frame A's stop
    # bit, so its position 0 is cycle 32.
    edge = 30
    new_p0 = edge + P0

    def level_at(c):
        if c < P0 + 16:
            return 0
        if c < new_p0:
            return 1
        if c < new_p0 + 16:
            return 0
        return 1

    async def testbench(ctx):
        # ---- Test 5: late edge restarts timing in phase ----
        trace = await _run(ctx, dut, new_p0 + 34, level_at,
                           edge_at=(0, edge), frame_end_at=(P0 + 31,))
        assert _pulses(trace, 0) == [P0 + 9, new_p0 + 9], (
            f"Test 5 FAIL: start_valid at {_pulses(trace, 0)}, "
            f"expected [{P0 + 9}, {new_p0 + 9}]"
        )
        expected = [P0 + 15, P0 + 31, new_p0 + 15, new_p0 + 31]
        assert _pulses(trace, 1) == expected, (
            f"Test 5 FAIL: bit_valid at {_pulses(trace, 1)}, expected {expected}"
        )
        assert trace[P0 + 31][2] == 1, "Test 5 FAIL: stop bit should sample high"
        assert trace[new_p0 + 15][2] == 0, "Test 5 FAIL: second start bit should sample low"
        print("Test 5 PASSED: early start edge kept in phase.")

    sim.add_testbench(testbench)
    sim.run()


def test_bit_sampler_edge_on_frame_end():
    dut = BitSampler()
    sim = Simulator(dut)
    sim.add_clock(1e-6)

    # The next start edge coincides with frame A's frame_end tick
    frame_end = P0 + 31
    new_p0 = frame_end + P0

    def level_at(c):
        if c < P0 + 16:
            return 0
        if c < new_p0:
            return 1
        if c < new_p0 + 16:
            return 0
        return 1

    async def testbench(ctx):
        # ---- Test 7: edge on the frame_end tick ----
        trace = await _run(ctx, dut, new_p0 + 16, level_at,
                           edge_at=(0, frame_end), frame_end_at=(frame_end,))
        assert _pulses(trace, 0) == [P0 + 9, new_p0 + 9], (
            f"Test 7 FAIL: start_valid at {_pulses(trace, 0)}, "
            f"expected [{P0 + 9}, {new_p0 + 9}]"
        )
        assert _pulses(trace, 1) == [P0 + 15, P0 + 31, new_p0 + 15], (
            f"Test 7 FAIL: bit_valid at {_pulses(trace, 1)}"
        )
        assert all(row[3] for row in trace[1:]), (
            "Test 7 FAIL: sampler went idle between the two frames"
        )
        print("Test 7 PASSED: edge on frame_end aligns the next start.")

    sim.add_testbench(testbench)
    sim.run()


def test_bit_sampler_inhibit():
    dut = BitSampler()
    sim = Simulator(dut)
    sim.add_clock(1e-6)

    async def testbench(ctx):
        # ---- Test 6: inhibit ----
        trace = await _run(ctx, dut, 20, lambda c: 0, inhibit_at=tuple(range(20)))
        assert _pulses(trace, 0) == [] and not any(row[3] for row in trace), (
            "Test 6 FAIL: start accepted while inhibited"
        )

        trace = await _run(ctx, dut, 20, lambda c: 0, inhibit_at=(5,))
        assert trace[5][3] == 1 and trace[6][3] == 0, (
            "Test 6 FAIL: inhibit should stop bit timing"
        )
        assert _pulses(trace, 0) == [], "Test 6 FAIL: start_valid after inhibit"
        print("Test 6 PASSED: inhibit forces idle.")

    sim.add_testbench(testbench)
    sim.run()


if __name__ == "__main__":
    test_bit_sampler_timing()
    test_bit_sampler_vote()
    test_bit_sampler_early_edge()
    test_bit_sampler_edge_on_frame_end()
    test_bit_sampler_inhibit()
