"""
REHABCOACH Threading Module
"""

from .worker_pool import (
    WorkerPool,
    Task,
    TaskStatus,
    media_worker_pool,
    ml_worker_pool,
    live_worker_pool,
    get_live_pool,
    run_media_io,
    run_ml_inference
)

__all__ = [
    'WorkerPool',
    'Task',
    'TaskStatus',
    'media_worker_pool',
    'ml_worker_pool',
    'live_worker_pool',
    'get_live_pool',
    'run_media_io',
    'run_ml_inference'
]
