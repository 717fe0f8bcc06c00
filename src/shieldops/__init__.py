"""ShieldOps — file-integrity reconciliation against a trusted remote manifest."""
from __future__ import annotations

__version__ = "1.0.0"
