import asyncio
import threading
import time

import numpy as np
import pytest

from steadyflow import (
    CONVERGENCE_THRESHOLD,
    MAX_SESSION_STEPS,
    EmptyMask,
    ForceVector,
    SessionRunner,
    SessionState,
    SimulationConfig,
    SimulationSession,
    create_grid,
    run_session_async,
)


def _session(config, forces=(), weight=0.5, size=6, **kwargs):
    return SimulationSession(create_grid(size, size), forces, weight, config, **kwargs)


# ── Convergence ───────────────────────────────────────────────────────────────

def test_idle_until_run(no_physics):
    session = _session(no_physics)
    assert session.state is SessionState.IDLE
    assert session.telemetry == {"step_index": 0, "delta": None}


def test_zero_field_converges_on_second_step():
    session = SimulationSession(create_grid(5, 5))
    reports = list(session.steps())

    assert [r.step_index for r in reports] == [1, 2]
    assert reports[0].delta is None
    assert reports[1].delta == 0.0
    assert session.state is SessionState.CONVERGED

    result = session.result()
    assert result.converged
    assert result.steps == 2
    assert result.telemetry() == {"converged": True, "steps_to_converge": 2}


def test_small_grid_converges(diffusion_only, center_force):
    session = _session(diffusion_only, [center_force])
    result = session.run()

    assert result.state is SessionState.CONVERGED
    assert result.steps_to_converge == result.steps
    assert 2 < result.steps < MAX_SESSION_STEPS
    assert session.current_delta < CONVERGENCE_THRESHOLD
    # Flow settles pointing along the force
    assert result.grid.u[3, 3] > 0


def test_first_step_never_counts_as_converged(no_physics):
    # A step-1 delta would be zero here; convergence still needs step 2
    session = _session(no_physics, max_steps=1)
    result = session.run()
    assert result.state is SessionState.STEP_LIMIT_REACHED
    assert result.steps == 1
    assert result.steps_to_converge is None


def test_step_limit(diffusion_only, center_force):
    session = _session(diffusion_only, [center_force], max_steps=5)
    deltas = []
    result = session.run(observer=lambda r: deltas.append(r.delta))

    assert result.state is SessionState.STEP_LIMIT_REACHED
    assert not result.converged
    assert result.steps == 5
    assert result.steps_to_converge is None
    assert len(deltas) == 5


def test_unstable_config_hits_step_limit_instead_of_hanging(center_force):
    unstable = SimulationConfig(relaxation_factor=0.0, pressure_impact=0.0,
                                time_step=0.0, viscosity=1.0)
    session = _session(unstable, [center_force])

    with np.errstate(all="ignore"):
        result = session.run()

    assert result.state is SessionState.STEP_LIMIT_REACHED
    assert result.steps == MAX_SESSION_STEPS


def test_forces_are_not_reapplied_per_step(no_physics):
    # Weight 0 targets do nothing; raw forces must not sneak back in
    session = _session(no_physics, [ForceVector(0.5, 0.5, 1.0, 1.0)], weight=0.0)
    result = session.run()
    assert result.converged
    assert not result.grid.u.any()


def test_targets_built_once_from_forces(center_force, no_physics):
    session = _session(no_physics, [center_force], weight=0.3)
    assert len(session.targets) == 1
    assert session.targets[0].weight == 0.3
    assert session.targets[0].u == center_force.fx


def test_non_finite_force_positions_do_not_stop_a_session():
    forces = [ForceVector(float("inf"), 0.5, 1.0, 0.0), ForceVector(0.5, float("nan"), 0.0, 1.0)]
    result = SimulationSession(create_grid(6, 6), forces).run()
    assert result.converged
    assert not result.grid.u.any()


# ── Reports ───────────────────────────────────────────────────────────────────

def test_reports_are_read_only(diffusion_only, center_force):
    session = _session(diffusion_only, [center_force])
    report = next(session.steps())
    with pytest.raises(ValueError):
        report.u[3, 3] = 1.0


def test_telemetry_tracks_last_step(diffusion_only, center_force):
    session = _session(diffusion_only, [center_force], max_steps=3)
    session.run()
    telemetry = session.telemetry
    assert telemetry["step_index"] == 3
    assert telemetry["delta"] is not None


# ── Cancellation ──────────────────────────────────────────────────────────────

def test_cancel_mid_session_keeps_last_snapshot(diffusion_only, center_force):
    session = _session(diffusion_only, [center_force])
    emitted = []

    def observer(report):
        emitted.append(report)
        if report.step_index == 3:
            session.cancel()

    result = session.run(observer=observer)

    assert result.state is SessionState.ABORTED
    assert not result.converged
    assert result.steps == 3
    assert len(emitted) == 3
    np.testing.assert_array_equal(result.grid.u, emitted[-1].u)
    np.testing.assert_array_equal(result.grid.v, emitted[-1].v)


def test_cancel_before_start(diffusion_only, center_force):
    session = _session(diffusion_only, [center_force])
    initial = session.grid
    session.cancel()

    result = session.run()

    assert result.state is SessionState.ABORTED
    assert result.steps == 0
    assert result.grid is initial


def test_dropping_the_generator_aborts(diffusion_only, center_force):
    session = _session(diffusion_only, [center_force])
    steps = session.steps()
    next(steps)
    next(steps)
    steps.close()
    assert session.state is SessionState.ABORTED
    assert session.current_step == 2


def test_session_runs_only_once():
    session = SimulationSession(create_grid(4, 4))
    session.run()
    with pytest.raises(RuntimeError):
        session.run()


# ── asyncio ───────────────────────────────────────────────────────────────────

def test_async_session_converges(diffusion_only, center_force):
    session = _session(diffusion_only, [center_force])
    result = asyncio.run(run_session_async(session))
    assert result.converged


def test_async_cancel_from_another_task(diffusion_only, center_force):
    session = _session(diffusion_only, [center_force])
    seen = []

    async def watcher():
        while session.current_step < 3:
            await asyncio.sleep(0)
        session.cancel()

    async def main():
        task = asyncio.ensure_future(watcher())
        result = await run_session_async(session, observer=lambda r: seen.append(r.step_index))
        await task
        return result

    result = asyncio.run(main())

    assert result.state is SessionState.ABORTED
    # One yield cycle at most between the cancel and the stop
    assert result.steps <= 4
    assert seen[-1] == result.steps


# ── Worker thread runner ──────────────────────────────────────────────────────

def test_runner_runs_to_convergence(diffusion_only, center_force):
    mask = np.zeros((6, 6), dtype=bool)
    finished = []
    runner = SessionRunner()

    runner.start(mask, [center_force], 0.5, diffusion_only, on_finish=finished.append)
    result = runner.wait(timeout=30)

    assert result is not None
    assert result.converged
    assert finished == [result]
    assert not runner.is_running
    assert runner.telemetry["step_index"] == result.steps
    assert runner.error is None


def test_runner_queue_keeps_latest_reports(diffusion_only, center_force):
    runner = SessionRunner(max_queue=2)
    runner.start(np.zeros((6, 6), dtype=bool), [center_force], 0.5, diffusion_only)
    result = runner.wait(timeout=30)

    assert runner.reports.qsize() <= 2
    assert runner.latest_report().step_index == result.steps
    last = None
    while not runner.reports.empty():
        last = runner.reports.get_nowait()
    assert last.step_index == result.steps


def test_runner_restart_cancels_previous_session(diffusion_only, center_force):
    mask = np.zeros((6, 6), dtype=bool)
    runner = SessionRunner()
    gate = threading.Event()
    first_steps = []

    def slow(report):
        first_steps.append(report.step_index)
        gate.wait(5)

    first = runner.start(mask, [center_force], 0.5, diffusion_only, on_step=slow)

    deadline = time.monotonic() + 5
    while not first_steps and time.monotonic() < deadline:
        time.sleep(0.01)
    assert first_steps == [1]

    threading.Timer(0.05, gate.set).start()
    second = runner.start(mask, [center_force], 0.5, diffusion_only)

    assert first.state is SessionState.ABORTED
    assert first.current_step == 1
    assert runner.session is second

    result = runner.wait(timeout=30)
    assert result.converged


def test_runner_abort(diffusion_only, center_force):
    runner = SessionRunner()
    gate = threading.Event()

    def slow(report):
        gate.wait(5)

    session = runner.start(np.zeros((6, 6), dtype=bool), [center_force], 0.5,
                           diffusion_only, on_step=slow)
    runner.abort()
    gate.set()
    result = runner.wait(timeout=30)

    assert result.state is SessionState.ABORTED
    assert session.current_step <= 1


def test_runner_rejects_empty_mask():
    runner = SessionRunner()
    with pytest.raises(EmptyMask):
        runner.start([[]])
    assert not runner.is_running


def test_concurrent_restarts_leave_one_session_running(diffusion_only, center_force):
    mask = np.zeros((6, 6), dtype=bool)
    runner = SessionRunner()

    for _ in range(5):
        barrier = threading.Barrier(2)
        started, errors = [], []

        def restart():
            barrier.wait()
            try:
                started.append(runner.start(mask, [center_force], 0.5, diffusion_only))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=restart) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(30)

        assert errors == []
        assert len(started) == 2
        winner = runner.session
        assert winner in started
        loser = started[0] if started[1] is winner else started[1]
        assert loser.state.is_terminal

        result = runner.wait(timeout=30)
        assert result.converged


def test_restart_from_a_step_callback(diffusion_only, center_force):
    mask = np.zeros((6, 6), dtype=bool)
    runner = SessionRunner()
    first_finished, second_finished = [], []
    first_worker = []

    def restart_on_second_step(report):
        if report.step_index == 2 and not first_worker:
            first_worker.append(threading.current_thread())
            runner.start(mask, [center_force], 0.5, diffusion_only,
                         on_finish=second_finished.append)

    first = runner.start(mask, [center_force], 0.5, diffusion_only,
                         on_step=restart_on_second_step, on_finish=first_finished.append)

    deadline = time.monotonic() + 5
    while not first_worker and time.monotonic() < deadline:
        time.sleep(0.01)
    first_worker[0].join(30)
    result = runner.wait(timeout=30)

    assert first.state is SessionState.ABORTED
    assert runner.session is not first
    assert first_finished == []
    assert result is not None and result.converged
    assert second_finished == [result]
