"""
Job Scheduler - distributed job scheduling for worker node fleets.
"""

__version__ = "1.0.0"
