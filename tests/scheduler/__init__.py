"""
Job Scheduler core test suite.

- State transitions, assignment, liveness and supervision
- Concurrency invariants under real threads
- Persistence compare-and-swap primitives
"""
