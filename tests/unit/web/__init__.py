"""Unit tests for weighbatch web route modules.

Structure:
    tests/unit/web/
    ├── test_routes_batches.py     # Batch listing, lifecycle and transmission
    ├── test_routes_health.py      # Health check
    ├── test_routes_items.py       # Item mutations and history
    └── test_routes_reconcile.py   # Reconciliation runs

Testing pattern:
    - Use FastAPI's TestClient for route testing
    - Mock get_session and the service functions each route calls
    - Check request validation and domain error status mapping
"""
