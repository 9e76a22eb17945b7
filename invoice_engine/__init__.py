"""
Invoice Engine - Source Package

The reconciliation core of a personal-finance dashboard: billing cycles,
per-card invoices and the aggregate income/expense figures shown to users.

DESIGN PRINCIPLES:
1. Same inputs → same outputs (pure, deterministic computation)
2. Degrade, never crash
3. Provider data overrides local sums only under a fixed precedence
4. Every fallback is visible in the trace
5. No I/O inside the engine
"""

__version__ = "1.0.0"
__author__ = "Invoice Engine Team"
