"""Failure policy for contract violations.

All violations raise the same exception type, so callers can treat
pipeline bugs uniformly.
"""

from enum import Enum


class FailurePolicy(str, Enum):
    """How a processor reacts to a contract violation.

    FAIL_FAST (default): raise immediately, mark the task failed.
    SKIP_ROW: drop the offending row, count it, continue the task.
    """
    FAIL_FAST = "fail_fast"
    SKIP_ROW = "skip_row"


class ContractViolation(RuntimeError):
    """Raised when an output row breaks its structural contract.

    This indicates a bug in row construction, not bad input data. Bad
    input surfaces as ``SnaplogError`` or ``EtlError`` instead.
    """
    pass
