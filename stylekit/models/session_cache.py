"""
Inference session cache.

Holds at most one live ONNX Runtime session per model file for the
lifetime of a pipeline. Lookups and registration of in-flight loads
happen before the first await, so back-to-back requests for an uncached
file share a single load under cooperative scheduling.
"""

import asyncio
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import aiofiles
import onnxruntime as ort
import structlog

from ..utils.config import ModelSettings
from ..utils.errors import ModelLoadError
from ..utils.monitoring import CACHED_SESSIONS, MODEL_LOAD_DURATION

logger = structlog.get_logger()

SessionLoader = Callable[[Path], Awaitable[Any]]

GRAPH_OPTIMIZATION_LEVELS = {
    'disabled': ort.GraphOptimizationLevel.ORT_DISABLE_ALL,
    'basic': ort.GraphOptimizationLevel.ORT_ENABLE_BASIC,
    'extended': ort.GraphOptimizationLevel.ORT_ENABLE_EXTENDED,
    'all': ort.GraphOptimizationLevel.ORT_ENABLE_ALL,
}


class OnnxSessionLoader:
    """Creates ONNX Runtime sessions from model files."""

    def __init__(self, settings: Optional[ModelSettings] = None, enable_metrics: bool = True):
        self.settings = settings or ModelSettings()
        self.enable_metrics = enable_metrics

    def session_options(self) -> ort.SessionOptions:
        options = ort.SessionOptions()
        options.graph_optimization_level = GRAPH_OPTIMIZATION_LEVELS[
            self.settings.graph_optimization_level
        ]
        options.enable_cpu_mem_arena = self.settings.enable_cpu_mem_arena
        options.enable_mem_pattern = self.settings.enable_mem_pattern
        options.log_severity_level = self.settings.log_severity_level
        if self.settings.intra_op_num_threads:
            options.intra_op_num_threads = self.settings.intra_op_num_threads
        return options

    def providers(self) -> List[str]:
        """Configured execution providers available in this runtime."""
        available = ort.get_available_providers()
        providers = [p for p in self.settings.execution_providers if p in available]
        if not providers:
            logger.warning("No configured execution provider available, using CPU",
                           configured=self.settings.execution_providers,
                           available=available)
            providers = ['CPUExecutionProvider']
        return providers

    async def __call__(self, path: Path) -> ort.InferenceSession:
        """
        Load a model file into a new inference session.

        Raises:
            ModelLoadError: If the file is missing, unreadable or not a valid model
        """
        if not path.is_file():
            raise ModelLoadError(f"Model file not found: {path}")

        try:
            async with aiofiles.open(path, 'rb') as f:
                model_bytes = await f.read()
        except OSError as e:
            raise ModelLoadError(f"Failed to read model file {path}: {e}") from e

        if not model_bytes:
            raise ModelLoadError(f"Model file is empty: {path}")

        loop = asyncio.get_running_loop()
        start_time = time.perf_counter()
        session = await loop.run_in_executor(None, self._create_session, model_bytes, path)
        duration = time.perf_counter() - start_time

        if self.enable_metrics:
            MODEL_LOAD_DURATION.labels(model=path.name).observe(duration)
        logger.info("Inference session created", model=path.name,
                    size_bytes=len(model_bytes), duration=duration,
                    providers=session.get_providers())
        return session

    def _create_session(self, model_bytes: bytes, path: Path) -> ort.InferenceSession:
        try:
            return ort.InferenceSession(
                model_bytes,
                sess_options=self.session_options(),
                providers=self.providers()
            )
        except Exception as e:
            raise ModelLoadError(f"Failed to create session for {path.name}: {e}") from e


class SessionCache:
    """
    Per-pipeline map from model filename to a loaded session.

    Append-only apart from clear(), which releases every session.
    """

    def __init__(
        self,
        models_dir: Union[str, Path] = "./models",
        loader: Optional[SessionLoader] = None,
        enable_metrics: bool = True
    ):
        self.models_dir = Path(models_dir)
        self.loader = loader or OnnxSessionLoader()
        self.enable_metrics = enable_metrics
        self.load_count = 0
        self._sessions: Dict[str, Any] = {}
        # filename -> (load task, cache generation it was started in)
        self._pending: Dict[str, Tuple[asyncio.Task, int]] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, filename: str) -> bool:
        return filename in self._sessions

    @property
    def cached_models(self) -> List[str]:
        return list(self._sessions)

    def is_loading(self, filename: str) -> bool:
        return filename in self._pending

    async def get(self, filename: str) -> Any:
        """
        Return the session for a model file, loading it on first use.

        Concurrent callers for the same uncached file await the same load.
        A load started before clear() is waited out before a new one starts.

        Raises:
            ModelLoadError: If the load fails or the cache was cleared while
                it ran; nothing is cached and a later call retries
        """
        while True:
            session = self._sessions.get(filename)
            if session is not None:
                logger.debug("Session cache hit", model=filename)
                return session

            entry = self._pending.get(filename)
            if entry is None:
                task = asyncio.ensure_future(self._load(filename, self._generation))
                self._pending[filename] = (task, self._generation)
                break

            task, generation = entry
            if generation == self._generation:
                logger.debug("Joining in-flight session load", model=filename)
                break

            logger.debug("Waiting for load started before cache clear", model=filename)
            await asyncio.wait([task])

        # A cancelled waiter must not cancel the shared load
        return await asyncio.shield(task)

    async def _load(self, filename: str, generation: int) -> Any:
        self.load_count += 1
        path = self.models_dir / filename
        logger.info("Loading inference session", model=filename, path=str(path))

        try:
            session = await self.loader(path)
        except ModelLoadError:
            raise
        except Exception as e:
            raise ModelLoadError(f"Failed to load model {filename}: {e}") from e
        finally:
            entry = self._pending.get(filename)
            if entry is not None and entry[0] is asyncio.current_task():
                del self._pending[filename]

        if generation != self._generation:
            self._release(filename, session)
            raise ModelLoadError(f"Session cache cleared while loading {filename}")

        self._sessions[filename] = session
        if self.enable_metrics:
            CACHED_SESSIONS.inc()
        return session

    def _release(self, filename: str, session: Any) -> bool:
        release = getattr(session, 'release', None)
        if callable(release):
            try:
                release()
            except Exception as e:
                logger.error("Failed to release inference session",
                             model=filename, error=str(e))
                return False
        logger.info("Inference session released", model=filename)
        return True

    def clear(self) -> int:
        """
        Release every cached session.

        A session that fails to release is still dropped. Loads in flight
        release their session on completion and fail their waiters.

        Returns:
            Number of sessions dropped from the cache
        """
        sessions = list(self._sessions.items())
        try:
            for filename, session in sessions:
                self._release(filename, session)
        finally:
            self._sessions.clear()
            self._generation += 1
            if self.enable_metrics:
                CACHED_SESSIONS.dec(len(sessions))
        return len(sessions)
