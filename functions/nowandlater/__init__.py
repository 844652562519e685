"""
Data-access service for the Now & Later task manager.

Routes every read and write between the direct Google APIs (Sheets and
Drive) and the legacy Apps Script web app, and tracks per-user cache
invalidation so reads after a write skip stale caches.
"""
