"""Trigger authorization package."""

from recurring_ledger.trigger.gate import AuthorizationError, TriggerGate

__all__ = ["AuthorizationError", "TriggerGate"]
