import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union
import numpy as np
from grainpy.domain.errors import InvalidInputError, InternalInvariantError, WorkerBusyError
from grainpy.domain.interfaces import RandomSource
from grainpy.domain.models import GrainSettings
from grainpy.services.rendering.engine import GrainEngine, RasterInput, coerce_raster
from grainpy.kernel.system.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProgressMessage:
    stage: str
    progress: int


@dataclass(frozen=True)
class ResultMessage:
    buffer: np.ndarray
    width: int
    height: int
    metrics: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ErrorMessage:
    """
    Terminal failure. `kind` is "invalid_input", "internal" or "unexpected".
    """

    error: str
    kind: str


WorkerMessage = Union[ProgressMessage, ResultMessage, ErrorMessage]


class GrainWorker:
    """
    Runs grain requests on a single background thread. Progress and exactly
    one terminal message per request are delivered on `messages`.
    """

    def __init__(self, messages: Optional["queue.Queue[WorkerMessage]"] = None):
        self.messages: "queue.Queue[WorkerMessage]" = (
            messages if messages is not None else queue.Queue()
        )
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="grain")
        self._lock = threading.Lock()
        self._busy = False

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def submit(
        self,
        buffer: RasterInput,
        width: int,
        height: int,
        settings: Union[GrainSettings, Mapping[str, Any]],
        rng: Optional[RandomSource] = None,
    ) -> "Future[None]":
        """
        Validates synchronously (raising InvalidInputError) and schedules the
        request. Raises WorkerBusyError while a previous request is in flight.
        """
        if not isinstance(settings, GrainSettings):
            settings = GrainSettings.from_dict(settings)
        raster = coerce_raster(buffer, width, height).copy()

        with self._lock:
            if self._busy:
                raise WorkerBusyError("A grain request is already in progress")
            self._busy = True

        try:
            return self._executor.submit(self._run, raster, width, height, settings, rng)
        except RuntimeError:
            with self._lock:
                self._busy = False
            raise

    def _emit_progress(self, stage: str, percent: int) -> None:
        self.messages.put(ProgressMessage(stage=stage, progress=percent))

    def _run(
        self,
        raster: np.ndarray,
        width: int,
        height: int,
        settings: GrainSettings,
        rng: Optional[RandomSource],
    ) -> None:
        message: WorkerMessage
        try:
            engine = GrainEngine(settings, rng=rng, progress=self._emit_progress)
            result = engine.process(raster, width, height)
            message = ResultMessage(
                buffer=result.buffer,
                width=result.width,
                height=result.height,
                metrics=result.metrics,
            )
        except InvalidInputError as e:
            logger.error(f"Grain request rejected: {e}")
            message = ErrorMessage(error=str(e), kind="invalid_input")
        except InternalInvariantError as e:
            logger.error(f"Grain request aborted: {e}")
            message = ErrorMessage(error=str(e), kind="internal")
        except Exception as e:
            logger.exception("Unexpected failure during grain processing")
            message = ErrorMessage(error=f"{type(e).__name__}: {e}", kind="unexpected")
        finally:
            with self._lock:
                self._busy = False
        self.messages.put(message)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
