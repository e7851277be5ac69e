"""Transport adapters (FastAPI REST + JSON-RPC registration)."""
