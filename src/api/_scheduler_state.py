"""
Scheduler state management for API integration.

Provides singleton access to the SchedulerService instance.
Initialized during FastAPI lifespan.

Usage:
    from ._scheduler_state import get_scheduler_service, init_scheduler_service

    # In lifespan:
    init_scheduler_service(settings)

    # In routers:
    service = get_scheduler_service()
"""

from typing import Optional

from src.infra.settings import SchedulerSettings
from src.scheduler.service import SchedulerService


# Global scheduler service instance
_scheduler_service: Optional[SchedulerService] = None


def init_scheduler_service(
    settings: SchedulerSettings,
    start_ticker: bool = True,
) -> SchedulerService:
    """
    Initialize the scheduler service singleton.

    Called during FastAPI lifespan startup.

    Args:
        settings: Scheduler configuration
        start_ticker: Whether to start periodic supervision immediately

    Returns:
        Initialized SchedulerService
    """
    global _scheduler_service

    if _scheduler_service is not None:
        return _scheduler_service

    _scheduler_service = SchedulerService.create(settings)
    if start_ticker:
        _scheduler_service.start_ticker()

    return _scheduler_service


def set_scheduler_service(service: Optional[SchedulerService]) -> None:
    """Install a pre-built service (or clear it with None)."""
    global _scheduler_service
    _scheduler_service = service


def get_scheduler_service() -> SchedulerService:
    """
    Get the scheduler service singleton.

    Raises:
        RuntimeError: If scheduler service not initialized
    """
    if _scheduler_service is None:
        raise RuntimeError(
            "Scheduler service not initialized. "
            "Ensure init_scheduler_service() is called during startup."
        )

    return _scheduler_service


def shutdown_scheduler_service() -> None:
    """
    Shutdown the scheduler service.

    Called during FastAPI lifespan shutdown.
    Stops the supervisor ticker if running.
    """
    global _scheduler_service

    if _scheduler_service is not None:
        if _scheduler_service.is_running:
            _scheduler_service.stop_ticker()

        _scheduler_service = None
