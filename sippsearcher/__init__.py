"""
SippSearcher store-locator API.

FastAPI application for finding nearby stores, reporting and verifying drink
inventory, and signing the guestbook. Persistence is pluggable: Postgres,
an embedded SQLite file, or an in-memory fallback for development.
"""
