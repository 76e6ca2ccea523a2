"""
taskguard

Resilience and distributed-state layer for a task-management backend:
a namespaced Redis store, a sliding-window rate limiter, single-use
rotating refresh tokens and a circuit-breaker registry.
"""

__version__ = "1.0.0"
