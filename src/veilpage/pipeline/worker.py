"""Background worker driving an orchestrator through message queues.

The caller posts :class:`WorkerCommand` messages on ``commands`` and reads
:class:`WorkerEvent` messages from ``events``. Nothing else is shared between
the caller and the worker thread; the orchestrator lives entirely on the
worker side.

Commands: ``init`` (payload ``license_state``), ``process`` (payload
``file``, ``options``, ``license_state``) and ``terminate``. Events:
``loaded``, ``ready``, ``progress``, ``complete``, ``result``, ``error`` and
finally ``terminated``.

:class:`WorkerClient` wraps a worker for callers that want blocking calls:
it waits for ``ready`` with a timeout and routes events to subscribers.
"""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, Union

from veilpage.errors import PipelineStateError, WorkerError
from veilpage.license import LicenseState, license_state_from_dict
from veilpage.logging import get_logger

from .config import InputFile, PipelineOptions, ProcessResult
from .events import EventChannel
from .orchestration import CompleteCallback, ErrorCallback, Orchestrator, ProgressCallback

logger = get_logger(__name__)


@dataclass(frozen=True)
class WorkerCommand:
    action: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkerEvent:
    type: str
    data: Any = None


OrchestratorFactory = Callable[[LicenseState], Orchestrator]


def _coerce_license(value: Any) -> Optional[LicenseState]:
    if value is None:
        return None
    if isinstance(value, dict):
        return license_state_from_dict(value)
    return value


class PipelineWorker:
    """Runs commands sequentially on a dedicated thread.

    ``terminate`` is handled after the current run completes or fails; there
    is no mid-stage abort.

    Parameters
    ----------
    factory:
        Builds the orchestrator from the initial license state. Defaults to
        ``Orchestrator(license_state)``.
    """

    def __init__(self, factory: Optional[OrchestratorFactory] = None) -> None:
        self.commands: "queue.Queue[WorkerCommand]" = queue.Queue()
        self.events: "queue.Queue[WorkerEvent]" = queue.Queue()
        self._factory = factory or (lambda state: Orchestrator(state))
        self._engine: Optional[Orchestrator] = None
        self._thread = threading.Thread(target=self._loop, name="veilpage-worker", daemon=True)

    def start(self) -> "PipelineWorker":
        self._thread.start()
        self.events.put(WorkerEvent("loaded"))
        return self

    def send(self, action: str, **payload: Any) -> None:
        self.commands.put(WorkerCommand(action, payload))

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    # -- worker side -------------------------------------------------------

    def _post(self, type_: str, data: Any = None) -> None:
        self.events.put(WorkerEvent(type_, data))

    def _init_engine(self, license_state: Optional[LicenseState]) -> Orchestrator:
        if self._engine is None:
            engine = self._factory(license_state)
            engine.on_progress(
                lambda step, progress, message: self._post(
                    "progress", {"step": step, "progress": progress, "message": message}
                )
            )
            engine.on_complete(lambda result: self._post("complete", result))
            engine.initialize()
            self._engine = engine
        elif license_state is not None:
            self._engine.license_state = license_state
        return self._engine

    def _handle_process(self, payload: Dict[str, Any]) -> None:
        engine = self._init_engine(_coerce_license(payload.get("license_state")))
        file = payload["file"]
        if not isinstance(file, InputFile):
            file = InputFile(**file)
        try:
            result = engine.process(file, payload.get("options"))
        except Exception as exc:
            # one error event per failed command, including option and state
            # errors that never reach the orchestrator's error channel
            self._post("error", {"message": str(exc), "step": engine.current_step})
            return
        self._post("result", result)

    def _loop(self) -> None:
        while True:
            command = self.commands.get()
            try:
                if command.action == "init":
                    self._init_engine(_coerce_license(command.payload.get("license_state")))
                    self._post("ready")
                elif command.action == "process":
                    self._handle_process(command.payload)
                elif command.action == "terminate":
                    if self._engine is not None:
                        self._engine.destroy()
                        self._engine = None
                    self._post("terminated")
                    return
                else:
                    logger.warning("Unknown worker action", extra={"extra": {"action": command.action}})
                    self._post("error", {"message": f"Unknown action: {command.action}"})
            except Exception as exc:
                logger.error("Worker command failed", extra={"extra": {"action": command.action}}, exc_info=exc)
                self._post("error", {"message": str(exc)})
            finally:
                self.commands.task_done()


READY_TIMEOUT = 10.0


class WorkerClient:
    """Caller-side proxy for a :class:`PipelineWorker`.

    Starts the worker, waits until it reports ``ready`` and routes its
    ``progress``, ``complete`` and ``error`` events to subscribers. Events are
    dispatched on the calling thread, while :meth:`process` waits for its
    result or on demand through :meth:`poll`.

    Parameters
    ----------
    factory:
        Orchestrator factory handed to a new :class:`PipelineWorker`.
    worker:
        Existing worker to drive instead.
    """

    def __init__(
        self,
        factory: Optional[OrchestratorFactory] = None,
        *,
        worker: Optional[PipelineWorker] = None,
    ) -> None:
        self.worker = worker or PipelineWorker(factory)
        self._progress: EventChannel[ProgressCallback] = EventChannel()
        self._complete: EventChannel[CompleteCallback] = EventChannel()
        self._error: EventChannel[ErrorCallback] = EventChannel()
        self._ready = False

    def on_progress(self, callback: ProgressCallback) -> "WorkerClient":
        self._progress.subscribe(callback)
        return self

    def on_complete(self, callback: CompleteCallback) -> "WorkerClient":
        self._complete.subscribe(callback)
        return self

    def on_error(self, callback: ErrorCallback) -> "WorkerClient":
        self._error.subscribe(callback)
        return self

    @property
    def ready(self) -> bool:
        return self._ready

    def init(
        self,
        license_state: Union[LicenseState, Dict[str, Any], None] = None,
        timeout: float = READY_TIMEOUT,
    ) -> "WorkerClient":
        """Start the worker if needed and block until it is ready."""
        if self._ready:
            return self
        if not self.worker.alive:
            self.worker.start()
        self.worker.send("init", license_state=license_state)
        self.wait_ready(timeout)
        return self

    def wait_ready(self, timeout: float = READY_TIMEOUT) -> None:
        """Wait for the ``ready`` event.

        Raises
        ------
        PipelineStateError
            On timeout, or when the worker failed to initialize.
        """
        event, error = self._wait_for(("ready", "error"), timeout)
        if event is None:
            raise PipelineStateError(f"Worker not ready after {timeout}s")
        if error is not None:
            raise PipelineStateError(f"Worker failed to initialize: {error}") from error
        self._ready = True

    def process(
        self,
        file: InputFile,
        options: Union[PipelineOptions, Dict[str, Any], None] = None,
        license_state: Union[LicenseState, Dict[str, Any], None] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        """Run one file on the worker and return its result.

        Raises :class:`WorkerError` when the run fails. After a timeout the
        late result is still delivered to subscribers on the next wait or poll.
        """
        if not self._ready:
            raise PipelineStateError("Worker not initialized; call init() first")
        self.worker.send("process", file=file, options=options, license_state=license_state)
        event, error = self._wait_for(("result", "error"), timeout)
        if event is None:
            raise PipelineStateError(f"No result from worker after {timeout}s")
        if error is not None:
            raise error
        return event.data

    def poll(self) -> int:
        """Dispatch every pending event without blocking; return how many."""
        count = 0
        while True:
            try:
                event = self.worker.events.get_nowait()
            except queue.Empty:
                return count
            self._dispatch(event)
            count += 1

    def terminate(self, timeout: float = READY_TIMEOUT) -> None:
        if self.worker.alive:
            self.worker.send("terminate")
            self._wait_for(("terminated",), timeout)
            self.worker.join(timeout)
        self._ready = False

    def _dispatch(self, event: WorkerEvent) -> Optional[WorkerError]:
        if event.type == "progress":
            data = event.data
            self._progress.emit(data["step"], data["progress"], data["message"])
        elif event.type == "complete":
            self._complete.emit(event.data)
        elif event.type == "error":
            data = event.data or {}
            error = WorkerError(data.get("message", "Worker error"), data.get("step"))
            self._error.emit(error)
            return error
        return None

    def _wait_for(
        self, types: Tuple[str, ...], timeout: Optional[float]
    ) -> Tuple[Optional[WorkerEvent], Optional[WorkerError]]:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                event = self.worker.events.get(timeout=remaining)
            except queue.Empty:
                return None, None
            error = self._dispatch(event)
            if event.type in types:
                return event, error


__all__ = ["WorkerCommand", "WorkerEvent", "PipelineWorker", "WorkerClient"]
