# offload.py
"""Background execution of trajectory predictions.

Two strategies share one interface: a thread pool with cooperative
cancellation, and a process pool that runs predictions in parallel batches.
Either way the caller gets a `PredictionHandle` whose completion callbacks
receive a `PredictedTrajectory`, or None if the worker failed.
"""
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ProcessPoolExecutor, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

import numpy as np

from bodies import OrbitalState
from config import config
from registry import GravitySources
from trajectory import PredictedTrajectory, TrajectoryPredictor

CompletionCallback = Callable[[Optional[PredictedTrajectory]], None]


@dataclass(frozen=True)
class PredictionRequest:
    """Everything a worker needs, copied at submission time. Picklable."""
    body_id: int
    state: OrbitalState
    body_mass: float
    body_radius: float
    sources: GravitySources
    steps: int
    delta_time: float
    method: str = config.Prediction.METHOD
    thrust: Optional[np.ndarray] = None
    generation: int = 0


def run_prediction(request: PredictionRequest,
                   cancel_event: Optional[threading.Event] = None) -> Optional[PredictedTrajectory]:
    """Runs one request to completion. Returns None if cancelled."""
    predictor = TrajectoryPredictor(method=request.method)
    trajectory = predictor.predict(
        request.state, request.body_mass, request.body_radius, request.sources,
        request.steps, request.delta_time, thrust=request.thrust,
        cancel_event=cancel_event, body_id=request.body_id,
    )
    if trajectory is None:
        return None
    return replace(trajectory, generation=request.generation)


class PredictionHandle:
    """Caller's view of one submitted prediction.

    Callbacks registered with `on_complete` run once, on the worker's thread
    (or immediately if the prediction has already finished). They never run
    for a cancelled handle.
    """

    def __init__(self, future: Future, request: Optional[PredictionRequest] = None,
                 cancel_event: Optional[threading.Event] = None):
        self._future = future
        self._cancel_event = cancel_event
        self._cancelled = False
        self.request = request
        self._settled = threading.Condition()
        self._pending_callbacks = 0
        self._outcome_ready = False
        self._outcome_value: Optional[PredictedTrajectory] = None

    @classmethod
    def failed(cls, request: Optional[PredictionRequest] = None) -> "PredictionHandle":
        """A handle that is already complete with no result."""
        future = Future()
        future.set_result(None)
        return cls(future, request)

    def cancel(self) -> bool:
        """Requests cancellation. Always succeeds from the caller's point of view."""
        self._cancelled = True
        if self._cancel_event is not None:
            self._cancel_event.set()
        self._future.cancel()
        return True

    def cancelled(self) -> bool:
        return self._cancelled or self._future.cancelled()

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> Optional[PredictedTrajectory]:
        """Waits for the prediction and for the completion callbacks registered so far.

        Returns:
            Optional[PredictedTrajectory]: The prediction, or None if cancelled or failed.

        Raises:
            TimeoutError: If `timeout` elapses first.
        """
        if self._cancelled:
            return None
        wait([self._future], timeout=timeout)
        if not self._future.done():
            raise TimeoutError(f"Prediction did not finish within {timeout} s.")
        with self._settled:
            if not self._settled.wait_for(lambda: self._pending_callbacks == 0, timeout=timeout):
                raise TimeoutError(f"Prediction callbacks did not finish within {timeout} s.")
        return None if self.cancelled() else self._outcome()

    def on_complete(self, callback: CompletionCallback):
        with self._settled:
            self._pending_callbacks += 1
        self._future.add_done_callback(lambda future: self._deliver(callback))

    def _deliver(self, callback: CompletionCallback):
        try:
            if not self.cancelled():
                callback(self._outcome())
        except Exception as e:
            logging.error(f"Prediction completion callback failed: {e}", exc_info=True)
        finally:
            with self._settled:
                self._pending_callbacks -= 1
                self._settled.notify_all()

    def _outcome(self) -> Optional[PredictedTrajectory]:
        with self._settled:
            if self._outcome_ready:
                return self._outcome_value
            self._outcome_ready = True
            future = self._future
            if future.cancelled():
                return None
            error = future.exception()
            if error is not None:
                body = self.request.body_id if self.request is not None else "?"
                logging.error(f"Prediction worker for body {body} failed: {error}", exc_info=error)
                return None
            self._outcome_value = future.result()
            return self._outcome_value


class PredictionExecutor(ABC):
    """Submits predictions for background execution."""

    @abstractmethod
    def submit(self, request: PredictionRequest) -> PredictionHandle:
        """Starts a prediction and returns its handle. Never raises for pool failures."""

    @abstractmethod
    def shutdown(self, wait: bool = True):
        """Stops accepting work and releases workers."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.shutdown()
        return False


class ThreadedPredictionExecutor(PredictionExecutor):
    """Worker-thread strategy. Cancellation stops the rollout at the next check interval."""

    def __init__(self, max_workers: Optional[int] = None):
        self._pool = ThreadPoolExecutor(max_workers=max_workers or config.Offload.MAX_WORKERS,
                                        thread_name_prefix="trajectory")

    def submit(self, request: PredictionRequest) -> PredictionHandle:
        cancel_event = threading.Event()
        try:
            future = self._pool.submit(run_prediction, request, cancel_event)
        except RuntimeError as e:
            logging.error(f"Could not submit prediction for body {request.body_id}: {e}")
            return PredictionHandle.failed(request)
        return PredictionHandle(future, request, cancel_event)

    def shutdown(self, wait: bool = True):
        self._pool.shutdown(wait=wait, cancel_futures=True)


class ProcessPredictionExecutor(PredictionExecutor):
    """Parallel strategy: each request runs in a separate worker process.

    A running process cannot be interrupted. Cancelling only prevents queued
    work from starting and suppresses delivery of the result.
    """

    def __init__(self, max_workers: Optional[int] = None):
        self._pool = ProcessPoolExecutor(max_workers=max_workers or config.Offload.MAX_WORKERS)

    def submit(self, request: PredictionRequest) -> PredictionHandle:
        try:
            future = self._pool.submit(run_prediction, request)
        except RuntimeError as e:
            # Also covers BrokenProcessPool
            logging.error(f"Could not submit prediction for body {request.body_id}: {e}")
            return PredictionHandle.failed(request)
        return PredictionHandle(future, request)

    def submit_batch(self, requests: List[PredictionRequest]) -> List[PredictionHandle]:
        """Submits several requests at once, one handle per request in order."""
        return [self.submit(request) for request in requests]

    def shutdown(self, wait: bool = True):
        self._pool.shutdown(wait=wait, cancel_futures=True)


def create_executor(kind: Optional[str] = None, max_workers: Optional[int] = None) -> PredictionExecutor:
    """Builds the executor named by `kind` ("thread" or "process"), from config if omitted.

    Raises:
        ValueError: If `kind` is not recognised.
    """
    kind = kind or config.Offload.EXECUTOR
    if kind == "thread":
        return ThreadedPredictionExecutor(max_workers)
    if kind == "process":
        return ProcessPredictionExecutor(max_workers)
    raise ValueError(f"Unknown prediction executor '{kind}'. Use 'thread' or 'process'.")
