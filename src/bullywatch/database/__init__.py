"""
Persistence package for BullyWatch.

- **kv_store.py**: Abstract key-value store with TTLs and the in-memory store.
- **sqlite_kv_store.py**: aiosqlite-backed store.
- **db_connection.py** / **db_schema.py**: Connection management and schema.
- **resilient_store.py**: Degrades to memory-only on the first backend failure.
"""
