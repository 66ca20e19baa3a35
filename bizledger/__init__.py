"""
BizLedger - Source Package

Multi-tenant business bookkeeping backend: finance tracking with budgets,
tender (procurement) pipeline reporting, the KUDiR income/expense ledger,
and AI-assisted transaction categorization.

DESIGN PRINCIPLES:
1. Every record belongs to exactly one company
2. Aggregations are deterministic and recomputed from stored rows
3. AI suggests, the user decides
4. Every significant step is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "BizLedger Team"
