"""
Backend package for the Traditional Thai Medicine platform.

This package provides a FastAPI application over a relational database,
object storage and a notification queue, replacing the hosted edge functions
with one long-running service and worker.
"""
