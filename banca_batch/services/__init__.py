"""Batch services."""

from banca_batch.services.scheduler import ProgramacionScheduler, build_scheduler

__all__ = [
    "ProgramacionScheduler",
    "build_scheduler",
]
