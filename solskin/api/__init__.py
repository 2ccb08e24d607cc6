"""REST API: Prometheus exposition plus health and status endpoints."""

from solskin.api.app import build_app

__all__ = ["build_app"]
