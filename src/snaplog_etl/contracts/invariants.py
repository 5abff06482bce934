"""Formal pipeline invariants.

Documents what each stage MUST produce. Reviewer anchor, not code.
"""

PIPELINE_INVARIANTS = {
    "schema": [
        "First non-empty line carries the 'web100_vars' marker",
        "Every descriptor width matches its type code",
        "At most one dominant descriptor per effective name",
    ],

    "snaplog": [
        "(total - header_length) % record_length == 0",
        "snapshot(i) only for 0 <= i < snapshot_count",
    ],

    "row": [
        "One row per data file (c2s or s2c), never per meta file",
        "test_id, task_filename, log_time and parse_time are non-empty strings",
        "connection_spec.data_direction is 0 (c2s) or 1 (s2c)",
        "web100_log_entry.snap is a mapping of decoded variables",
        "anomalies, when present, is non-empty",
    ],

    "database": [
        "Warehouse table named after correlator.table",
        "Columns are the dotted paths of the flattened row",
        "Columns are only ever added, never dropped",
    ],
}

STAGE_REQUIREMENTS = {
    "schema": "REQUIRED",    # loaded once at startup
    "snaplog": "REQUIRED",   # every data file
    "row": "REQUIRED",       # every emitted row
    "database": "REQUIRED",  # every accepted row is persisted
}
