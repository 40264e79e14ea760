"""
session.py - Cancellable Steady-State Sessions
==============================================
The interactive way to run the solver: keep stepping until the velocity
field stops changing, the step ceiling is hit, or someone cancels.

Session loop:
  1. Forces are converted ONCE, up front, into soft target velocities
     (convert_forces_to_targets with the caller's weight). Raw forces are
     never re-added per step in this mode.
  2. Each iteration: check the cancel flag → run_step(current, [], targets)
     → compute delta vs the previous step → publish telemetry → yield.
  3. delta < threshold on any step after the first → CONVERGED.
  4. MAX_SESSION_STEPS steps without converging → STEP_LIMIT_REACHED.
  5. Cancel → ABORTED, keeping the last completed snapshot. Not an error.

State machine:
  IDLE → RUNNING → { CONVERGED | ABORTED | STEP_LIMIT_REACHED }

Every step is atomic with respect to cancellation: the flag is only looked
at between whole steps, so the final grid is always a fully completed one.

Three ways to drive a session:
  - SimulationSession.steps() / run()   : plain generator / blocking loop
  - run_session_async()                 : asyncio, yields to the event loop
  - SessionRunner                       : one dedicated worker thread with
                                          cancel-then-restart semantics
"""

import asyncio
import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .config import (
    CONVERGENCE_THRESHOLD,
    DEFAULT_SIMULATION_CONFIG,
    DEFAULT_TARGET_WEIGHT,
    MAX_SESSION_STEPS,
    SimulationConfig,
)
from .convergence import max_velocity_delta
from .forces import convert_forces_to_targets
from .grid import SimulationGrid, create_grid_from_mask
from .simulation import run_step

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE               = "idle"
    RUNNING            = "running"
    CONVERGED          = "converged"
    ABORTED            = "aborted"
    STEP_LIMIT_REACHED = "step_limit_reached"

    @property
    def is_terminal(self) -> bool:
        return self not in (SessionState.IDLE, SessionState.RUNNING)


@dataclass(frozen=True)
class StepReport:
    """
    Telemetry for one completed step plus the velocity it produced.

    `u` and `v` are read-only views of the step's snapshot. `delta` is None
    for the first step (nothing to compare against).
    """
    step_index: int
    delta: Optional[float]
    u: np.ndarray
    v: np.ndarray


@dataclass(frozen=True)
class SessionResult:
    state: SessionState
    steps: int
    steps_to_converge: Optional[int]
    grid: SimulationGrid

    @property
    def converged(self) -> bool:
        return self.state is SessionState.CONVERGED

    def telemetry(self) -> dict:
        """Termination summary for a UI: {converged, steps_to_converge}."""
        return {"converged": self.converged, "steps_to_converge": self.steps_to_converge}


def _read_only(field: np.ndarray) -> np.ndarray:
    view = field.view()
    view.flags.writeable = False
    return view


class SimulationSession:
    """
    One run toward steady state on one grid.

    Usage:
        session = SimulationSession(create_grid_from_mask(mask), forces, target_weight=0.1)
        for report in session.steps():
            print(report.step_index, report.delta)
        print(session.result().telemetry())

    A session runs once. cancel() may be called from any thread.
    """

    def __init__(self, grid: SimulationGrid, forces=(),
                 target_weight: float = DEFAULT_TARGET_WEIGHT,
                 config: SimulationConfig = DEFAULT_SIMULATION_CONFIG,
                 max_steps: int = MAX_SESSION_STEPS,
                 threshold: float = CONVERGENCE_THRESHOLD):
        self.config = config
        self.max_steps = max_steps
        self.threshold = threshold
        self.target_weight = target_weight

        # Built once; the loop below never touches raw forces
        self.targets = convert_forces_to_targets(forces, target_weight)

        self.grid = grid
        self.state = SessionState.IDLE
        self.steps_to_converge = None

        # (step_index, delta), replaced as one tuple so readers never see a
        # step index paired with the previous step's delta
        self._telemetry = (0, None)
        self._cancel = threading.Event()

    # ── Cancellation ──────────────────────────────────────────────────────
    def cancel(self):
        """Ask the loop to stop before its next step."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    # ── Telemetry ─────────────────────────────────────────────────────────
    @property
    def current_step(self) -> int:
        return self._telemetry[0]

    @property
    def current_delta(self) -> Optional[float]:
        return self._telemetry[1]

    @property
    def telemetry(self) -> dict:
        step_index, delta = self._telemetry
        return {"step_index": step_index, "delta": delta}

    # ── Loop ──────────────────────────────────────────────────────────────
    def steps(self):
        """
        Generator over StepReports. Each `yield` is the point where the
        caller's scheduler gets control back between steps.
        """
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"Session already {self.state.value}; start a new one")

        self.state = SessionState.RUNNING
        logger.info("Session started: %dx%d grid, %d target(s), weight=%s",
                    self.grid.width, self.grid.height, len(self.targets), self.target_weight)

        current = self.grid
        previous = None
        step = 0

        try:
            while True:
                if self._cancel.is_set():
                    self.state = SessionState.ABORTED
                    break
                if step >= self.max_steps:
                    self.state = SessionState.STEP_LIMIT_REACHED
                    break

                current = run_step(current, (), self.targets, self.config)
                step += 1

                delta = None
                if previous is not None:
                    delta = max_velocity_delta(current.u, current.v, previous.u, previous.v)

                self.grid = current
                self._telemetry = (step, delta)
                logger.debug("step %d delta=%s", step, delta)

                yield StepReport(step, delta, _read_only(current.u), _read_only(current.v))

                if delta is not None and delta < self.threshold:
                    self.state = SessionState.CONVERGED
                    self.steps_to_converge = step
                    break

                previous = current
        finally:
            # Consumer dropped the generator mid-run
            if self.state is SessionState.RUNNING:
                self.state = SessionState.ABORTED

        logger.info("Session finished: %s after %d step(s), delta=%s",
                    self.state.value, step, self.current_delta)

    def run(self, observer: Callable[[StepReport], None] = None) -> SessionResult:
        """Run to a terminal state on the calling thread."""
        for report in self.steps():
            if observer is not None:
                observer(report)
        return self.result()

    def result(self) -> SessionResult:
        return SessionResult(
            state=self.state,
            steps=self.current_step,
            steps_to_converge=self.steps_to_converge,
            grid=self.grid,
        )


async def run_session_async(session: SimulationSession,
                            observer: Callable[[StepReport], None] = None) -> SessionResult:
    """
    Drive a session from an asyncio event loop, handing control back to the
    loop after every step so other tasks (and session.cancel()) get a turn.

    If the task itself is cancelled the session ends as ABORTED and the
    CancelledError propagates as usual.
    """
    steps = session.steps()
    try:
        for report in steps:
            if observer is not None:
                observer(report)
            await asyncio.sleep(0)
    finally:
        steps.close()
    return session.result()


class SessionRunner:
    """
    The single solver instance behind a UI: at most one session at a time,
    each on its own daemon worker thread.

    start() cancels and joins whatever is running before launching the new
    session (cancel-then-restart, never queued). Reports go to `on_step`
    when given, otherwise into a bounded queue where the oldest report is
    dropped when full so a slow reader never stalls the solver.
    """

    def __init__(self, max_queue: int = 4):
        self._lock = threading.Lock()
        # Serializes whole restarts: abort, join, build, launch
        self._start_lock = threading.RLock()
        self._session: Optional[SimulationSession] = None
        self._thread: Optional[threading.Thread] = None
        self._reports: "queue.Queue[StepReport]" = queue.Queue(maxsize=max(1, int(max_queue)))
        self._latest: Optional[StepReport] = None
        self.result: Optional[SessionResult] = None
        self.error: Optional[BaseException] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────
    def start(self, mask, forces=(), target_weight: float = DEFAULT_TARGET_WEIGHT,
              config: SimulationConfig = DEFAULT_SIMULATION_CONFIG,
              on_step: Callable[[StepReport], None] = None,
              on_finish: Callable[[SessionResult], None] = None,
              max_steps: int = MAX_SESSION_STEPS) -> Optional[SimulationSession]:
        """
        Abort any running session, then start a new one on `mask`.

        Concurrent calls are serialized; the last one to run wins. A call made
        from a session callback returns None without starting anything if
        another start() supersedes that session while this call waits.

        Raises:
            EmptyMask: the mask has no rows or columns (nothing is started).
        """
        if not self._acquire_start_lock():
            logger.info("Restart requested by a superseded session ignored")
            return None

        try:
            self.abort()
            self.wait()

            grid = create_grid_from_mask(mask)
            session = SimulationSession(grid, forces, target_weight, config, max_steps=max_steps)

            self._clear_reports()
            self._latest = None
            self.result = None
            self.error = None

            thread = threading.Thread(
                target=self._run, args=(session, on_step, on_finish),
                name="steadyflow-session", daemon=True,
            )
            # Published and started together, so wait() never sees an unstarted thread
            with self._lock:
                self._session = session
                self._thread = thread
                thread.start()
            return session
        finally:
            self._start_lock.release()

    def _acquire_start_lock(self) -> bool:
        """
        Take the start lock. A worker thread gives up once its own session is
        cancelled, because the thread holding the lock is then joining it.
        """
        me = threading.current_thread()
        while not self._start_lock.acquire(timeout=0.05):
            with self._lock:
                session = self._session if self._thread is me else None
            if session is not None and session.cancelled:
                return False
        return True

    def abort(self):
        """Cancel the running session, if any. Returns immediately."""
        with self._lock:
            session = self._session
        if session is not None:
            session.cancel()

    def wait(self, timeout: float = None) -> Optional[SessionResult]:
        """Block until the current session's thread exits (or timeout)."""
        with self._lock:
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        return self.result

    @property
    def is_running(self) -> bool:
        with self._lock:
            thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def session(self) -> Optional[SimulationSession]:
        return self._session

    # ── Telemetry ─────────────────────────────────────────────────────────
    @property
    def telemetry(self) -> dict:
        session = self._session
        if session is None:
            return {"step_index": 0, "delta": None}
        return session.telemetry

    @property
    def reports(self) -> "queue.Queue[StepReport]":
        """Reports produced when no on_step callback was given."""
        return self._reports

    def latest_report(self) -> Optional[StepReport]:
        return self._latest

    # ── Worker ────────────────────────────────────────────────────────────
    def _run(self, session, on_step, on_finish):
        try:
            result = session.run(observer=lambda report: self._publish(report, on_step))
        except Exception as exc:
            logger.exception("Session failed on worker thread")
            if self._is_current(session):
                self.error = exc
            return

        # A start() from one of this session's callbacks has already replaced it
        if not self._is_current(session):
            logger.debug("Dropping %s result of a superseded session", result.state.value)
            return

        self.result = result
        if on_finish is not None:
            on_finish(result)

    def _is_current(self, session) -> bool:
        with self._lock:
            return session is self._session

    def _publish(self, report: StepReport, on_step):
        self._latest = report
        if on_step is not None:
            on_step(report)
            return
        try:
            self._reports.put_nowait(report)
        except queue.Full:
            try:
                self._reports.get_nowait()
            except queue.Empty:
                pass
            self._reports.put_nowait(report)

    def _clear_reports(self):
        while True:
            try:
                self._reports.get_nowait()
            except queue.Empty:
                return
