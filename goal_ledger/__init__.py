"""
Goal Ledger - Source Package

Tracks savings/spending goals and the progress ledger recorded against them,
keeping each goal's derived fields consistent under concurrent writers.

DESIGN PRINCIPLES:
1. The ledger is the only source of truth for a goal's current amount
2. Status is derived, never typed in by a client
3. Concurrency is handled with version counters, never with locks
4. Fail visibly: conflicts are retried a bounded number of times, then reported
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Goal Ledger Team"
