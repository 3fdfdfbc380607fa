"""
REHABCOACH Worker Thread Pool

ThreadPoolExecutor for blocking OpenCV/MediaPipe calls
without blocking the async event loop.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor, Future
from typing import Callable, Any, Optional
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import threading

from core.config import settings

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Task:
    """Represents a processing task."""
    task_id: str
    func: Callable
    args: tuple = ()
    kwargs: dict = None
    status: TaskStatus = TaskStatus.PENDING
    error: Optional[str] = None
    created_at: datetime = None
    completed_at: datetime = None

    def __post_init__(self):
        if self.kwargs is None:
            self.kwargs = {}
        if self.created_at is None:
            self.created_at = datetime.now(timezone.utc)


class WorkerPool:
    """
    Thread pool for blocking media and model operations.

    Features:
    - Fixed-size thread pool (single worker by default, so work
      submitted to one pool runs strictly in submission order)
    - Async-compatible execution
    - Task counters for the /stats endpoint
    """

    def __init__(
        self,
        max_workers: int = None,
        name: str = "worker_pool"
    ):
        self.max_workers = max_workers or settings.THREAD_POOL_SIZE
        self.name = name

        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix=f"{name}_"
        )

        self._lock = threading.Lock()
        self._task_counter = 0
        self._running_count = 0
        self._completed_count = 0
        self._failed_count = 0

        logger.info(f"🧵 WorkerPool '{name}' initialized (workers: {self.max_workers})")

    def submit(self, func: Callable, *args, task_id: str = None, **kwargs) -> Future:
        """
        Submit a task to the thread pool.

        Returns:
            concurrent.futures.Future for the task result
        """
        with self._lock:
            self._task_counter += 1
            task_id = task_id or f"{self.name}_task_{self._task_counter}"

        task = Task(task_id=task_id, func=func, args=args, kwargs=kwargs)
        future = self._executor.submit(self._run_task, task)
        logger.debug(f"Task {task_id} submitted")
        return future

    async def submit_async(self, func: Callable, *args, task_id: str = None, **kwargs) -> Any:
        """
        Submit and await a task result (async-friendly).

        Exceptions raised by func propagate to the awaiting caller.
        """
        future = self.submit(func, *args, task_id=task_id, **kwargs)
        return await asyncio.wrap_future(future)

    def _run_task(self, task: Task) -> Any:
        """Execute a task in the thread pool."""
        task.status = TaskStatus.RUNNING
        with self._lock:
            self._running_count += 1

        try:
            result = task.func(*task.args, **task.kwargs)

            task.status = TaskStatus.COMPLETED
            task.completed_at = datetime.now(timezone.utc)
            with self._lock:
                self._completed_count += 1

            logger.debug(f"Task {task.task_id} completed")
            return result

        except Exception as e:
            task.status = TaskStatus.FAILED
            task.error = str(e)
            task.completed_at = datetime.now(timezone.utc)
            with self._lock:
                self._failed_count += 1

            logger.error(f"Task {task.task_id} failed: {e}")
            raise
        finally:
            with self._lock:
                self._running_count -= 1

    # ========================================
    # Lifecycle
    # ========================================

    def shutdown(self, wait: bool = True):
        """Shutdown the thread pool."""
        logger.info(f"Shutting down WorkerPool '{self.name}'...")
        self._executor.shutdown(wait=wait)
        logger.info(f"WorkerPool '{self.name}' shutdown complete")

    def get_stats(self) -> dict:
        """Get pool statistics."""
        return {
            "name": self.name,
            "max_workers": self.max_workers,
            "submitted_tasks": self._task_counter,
            "running_tasks": self._running_count,
            "completed_tasks": self._completed_count,
            "failed_tasks": self._failed_count,
        }


# ============================================
# Global Worker Pools
# ============================================

# Media I/O pool (clip open, seek, decode, camera reads)
media_worker_pool = WorkerPool(name="media_io", max_workers=1)

# ML inference pool (batch pose landmark detection)
ml_worker_pool = WorkerPool(name="ml_inference", max_workers=1)

# Live capture pool (per-frame detection for WebSocket sessions)
live_worker_pool = WorkerPool(name="live_inference", max_workers=1)


def get_live_pool() -> WorkerPool:
    """Get the live capture worker pool."""
    return live_worker_pool


async def run_media_io(func: Callable, *args) -> Any:
    """
    Run a blocking media call (OpenCV) on the media worker pool.

    Usage:
        ok = await run_media_io(capture.set, cv2.CAP_PROP_POS_MSEC, 2500.0)
    """
    return await media_worker_pool.submit_async(func, *args)


async def run_ml_inference(model_fn: Callable, input_data: Any) -> Any:
    """
    Run ML inference using the ML worker pool.

    Usage:
        landmarks = await run_ml_inference(detector.detect, image)
    """
    return await ml_worker_pool.submit_async(model_fn, input_data)
