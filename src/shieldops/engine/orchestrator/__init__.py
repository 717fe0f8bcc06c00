"""Pass orchestration."""
from __future__ import annotations

from shieldops.engine.orchestrator.reconciler import ReconciliationCoordinator

__all__ = ["ReconciliationCoordinator"]
