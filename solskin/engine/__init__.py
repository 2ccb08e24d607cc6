"""Reconciliation engine and its event queue."""

from solskin.engine.queue import EventQueue, QueueNotStartedError
from solskin.engine.reconciler import ReconcileOutcome, Reconciler

__all__ = ["EventQueue", "QueueNotStartedError", "ReconcileOutcome", "Reconciler"]
