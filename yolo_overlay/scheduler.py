"""
Budgeted, frame-sliced execution of one inference pass.

The host loop calls `tick(budget)` once per display frame; each call advances
the engine by at most `budget` internal steps and returns, so a long forward
pass is spread over several frames instead of stalling one of them.

State machine:

    IDLE --submit--> SUBMITTED --(engine scheduled)--> STEPPING
    STEPPING --tick (engine done)--> COMPLETE --take_output--> IDLE
    SUBMITTED/STEPPING --engine error--> FAILED --reset--> IDLE

Not reentrant: every call must come from the single driving thread.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .config import PreemptionPolicy
from .engines.base import ExecutionHandle, InferenceEngine
from .errors import EngineFault, InvalidConfiguration, SchedulerStateError, SubmissionRejected

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    STEPPING = "stepping"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class InferenceSession:
    session_id: int
    input_buffer: Optional[np.ndarray]
    handle: Optional[ExecutionHandle] = None
    steps_consumed: int = 0
    ticks: int = 0

    def release(self) -> None:
        """Drop the input buffer and close the execution handle. Safe to call twice."""
        handle = self.handle
        # Detach first so a failing close() still leaves nothing to step.
        self.handle = None
        self.input_buffer = None
        if handle is not None:
            handle.close()


class IncrementalScheduler:
    def __init__(self, engine: InferenceEngine, policy: PreemptionPolicy = PreemptionPolicy.REJECT):
        self.engine = engine
        self.policy = policy
        self._state = SchedulerState.IDLE
        self._session: Optional[InferenceSession] = None
        self._output: Optional[np.ndarray] = None
        self._ids = itertools.count(1)

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def session(self) -> Optional[InferenceSession]:
        return self._session

    @property
    def in_flight(self) -> bool:
        return self._state in (SchedulerState.SUBMITTED, SchedulerState.STEPPING)

    def _transition(self, new_state: SchedulerState) -> None:
        logger.debug("scheduler %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    def _release_session(self) -> None:
        session = self._session
        self._session = None
        self._output = None
        if session is not None:
            session.release()

    def _fail(self, exc: BaseException, during: str) -> EngineFault:
        session_id = self._session.session_id if self._session is not None else None
        logger.error("engine fault while %s (session %s): %s", during, session_id, exc)
        try:
            self._release_session()
        except Exception as close_exc:
            logger.warning("closing the failed session %s also raised: %s", session_id, close_exc)
        finally:
            self._transition(SchedulerState.FAILED)
        return EngineFault(f"Inference engine failed while {during}: {exc}")

    def submit(self, blob: np.ndarray) -> InferenceSession:
        """
        Start a new session for `blob`. The scheduler owns the buffer from here on.
        """

        if self.in_flight:
            if self.policy is PreemptionPolicy.REJECT:
                raise SubmissionRejected(
                    f"Session {self._session.session_id} is still {self._state.value}; wait for it to complete."
                )
            logger.info("discarding in-flight session %s for a newer input", self._session.session_id)
            # Release before the new submission so two input buffers are never held at once.
            self._release_session()
            self._transition(SchedulerState.IDLE)

        if self._state is not SchedulerState.IDLE:
            raise SchedulerStateError(f"submit() is not allowed in state {self._state.value}")

        self._session = InferenceSession(session_id=next(self._ids), input_buffer=blob)
        self._transition(SchedulerState.SUBMITTED)
        try:
            self._session.handle = self.engine.schedule(blob)
        except Exception as exc:
            raise self._fail(exc, "scheduling") from exc
        self._transition(SchedulerState.STEPPING)
        return self._session

    def tick(self, budget: int) -> SchedulerState:
        """
        Advance the in-flight session by at most `budget` engine steps.
        """

        if isinstance(budget, bool) or not isinstance(budget, int) or budget < 1:
            raise InvalidConfiguration(f"tick budget must be a positive integer, got {budget!r}")
        if self._state is not SchedulerState.STEPPING:
            raise SchedulerStateError(f"tick() is not allowed in state {self._state.value}")

        session = self._session
        session.ticks += 1
        try:
            for _ in range(budget):
                done = session.handle.step()
                session.steps_consumed += 1
                if done:
                    self._output = session.handle.output()
                    self._transition(SchedulerState.COMPLETE)
                    break
        except Exception as exc:
            raise self._fail(exc, "stepping") from exc

        return self._state

    def take_output(self) -> np.ndarray:
        if self._state is not SchedulerState.COMPLETE:
            raise SchedulerStateError(f"take_output() is not allowed in state {self._state.value}")
        output = self._output
        self._release_session()
        self._transition(SchedulerState.IDLE)
        return output

    def reset(self) -> None:
        """
        Drop any session and return to IDLE. The only way out of FAILED.
        """

        self._release_session()
        if self._state is not SchedulerState.IDLE:
            self._transition(SchedulerState.IDLE)
