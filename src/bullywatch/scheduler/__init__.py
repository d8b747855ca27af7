"""
Periodic background tasks.

- **periodic_scheduler.py**: Reusable scheduler used for window eviction,
  store purging and the monthly feedback run.
"""
