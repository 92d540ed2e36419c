"""
Farm Ledger - Source Package

The transactional core of a farm-management application: workers, buyers
and crops, plus the ledger entries (tasks, payments, sales, collections)
whose insertion or deletion moves a running balance.

DESIGN PRINCIPLES:
1. A balance only changes inside the transaction that writes its ledger entry
2. The tenant comes from the resolved identity, never from the payload
3. Fail early, fail visibly - errors are typed and always surfaced
4. Every ledger change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Farm Ledger Team"
