"""
Commerce Core

Back-office core for an online store:
- Inventory ledger with weighted-average cost accounting
- Order item mutation, status transitions and refunds
- Catalog assembly with per-category price adjustments and job progress rooms
"""

__version__ = "1.0.0"
