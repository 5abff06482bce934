"""Base contract enforcement utility."""

from snaplog_etl.contracts.failure import ContractViolation


def require(condition: bool, message: str) -> None:
    """Enforce a pipeline contract.

    Parameters
    ----------
    condition : bool
        The invariant that must hold.
    message : str
        Explanation used when it does not.

    Raises
    ------
    ContractViolation
        If condition is False.

    Examples
    --------
    >>> require("test_id" in row, "Row contract: missing test_id")
    """
    if not condition:
        raise ContractViolation(message)
