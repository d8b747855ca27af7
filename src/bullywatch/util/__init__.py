"""
Utility functions and helpers for BullyWatch.

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, and per-session log aggregation. Suppresses noise from
  verbose libraries (openai, httpx, aiosqlite). Uses prompt_toolkit for
  non-blocking console I/O.

- **keyed_lock.py**: Per-key asyncio locks used to serialise window and
  history updates per group and per sender.

- **hashing.py**: Short text fingerprints and stable pseudonymous labels.
"""
