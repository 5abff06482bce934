"""Output-row contract.

Enforces the structural guarantees of a row built by the correlator before
it is handed to a sink. Decoded variable values are not checked here.
"""

from collections.abc import Mapping

from snaplog_etl.contracts.base import require

REQUIRED_STRINGS = ("test_id", "task_filename", "log_time", "parse_time")
VALID_DIRECTIONS = (0, 1)


def assert_output_row(row: Mapping) -> None:
    """Enforce the output-row contract.

    Parameters
    ----------
    row : Mapping
        Row produced by ``TestCorrelator.process_test``.

    Raises
    ------
    ContractViolation
        If a required key is missing or malformed.
    """
    require(isinstance(row, Mapping), f"Row contract violated: row is {type(row)}, expected mapping")

    for key in REQUIRED_STRINGS:
        value = row.get(key)
        require(
            isinstance(value, str) and value != "",
            f"Row contract violated: '{key}' must be a non-empty string, got {value!r}"
        )

    conn_spec = row.get("connection_spec")
    require(isinstance(conn_spec, Mapping), "Row contract violated: missing connection_spec")
    require(
        conn_spec.get("data_direction") in VALID_DIRECTIONS,
        f"Row contract violated: data_direction {conn_spec.get('data_direction')!r} "
        f"not in {VALID_DIRECTIONS}"
    )

    log_entry = row.get("web100_log_entry")
    require(isinstance(log_entry, Mapping), "Row contract violated: missing web100_log_entry")
    require(
        isinstance(log_entry.get("snap"), Mapping),
        "Row contract violated: web100_log_entry.snap must be a mapping"
    )

    if "anomalies" in row:
        require(
            isinstance(row["anomalies"], Mapping) and len(row["anomalies"]) > 0,
            "Row contract violated: anomalies present but empty"
        )
