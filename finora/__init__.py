"""
Finora - Source Package

Client-side state and aggregation layer for a personal finance tracker:
transactions, savings goals, category budgets and the summaries derived
from them.

DESIGN PRINCIPLES:
1. Validate at the boundary, before any store mutation
2. Never update local state before the store acknowledges
3. Every record belongs to exactly one owner
4. Summaries are recomputed from records, never cached
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finora Team"
