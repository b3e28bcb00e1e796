"""Core identity primitives (local store, remote directory, profile cache).

Kept free of FastAPI concerns so it can be reused by API routes, scripts, and tests.
"""
