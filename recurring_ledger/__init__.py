"""
Recurring Ledger - Source Package

The batch scheduler behind recurring income and expense rules of a
personal bookkeeping application.

DESIGN PRINCIPLES:
1. One rule's failure never stops the others
2. Fail early, fail visibly
3. Never guess a schedule
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Recurring Ledger Team"
