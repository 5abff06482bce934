"""Pipeline contracts: fail-fast enforcement of stage invariants.

Contracts fail immediately and loudly when a stage does not produce the
invariants it promised.

- Pydantic validates config correctness
- Contracts validate row construction
- The decoder raises ``SnaplogError`` for bad input data
"""

from snaplog_etl.contracts.failure import ContractViolation, FailurePolicy
from snaplog_etl.contracts.base import require
from snaplog_etl.contracts.row import assert_output_row

__all__ = [
    "ContractViolation",
    "FailurePolicy",
    "require",
    "assert_output_row",
]
