"""
API Routers package.
"""

from . import jobs, nodes, scheduler

__all__ = ["jobs", "nodes", "scheduler"]
