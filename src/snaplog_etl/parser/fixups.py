"""Post-decode fixups applied to every NDT row before insertion."""

from snaplog_etl.web100.values import ValueMap

__all__ = ['fix_values', 'USEC_PER_SEC']

USEC_PER_SEC = 1_000_000


def fix_values(row: ValueMap) -> None:
    """Rewrite web100 values that need post-processing, in place.

    - The snapshot's address fields always replace the log header's
      connection spec, unless the snapshot value is missing.
    - Server and client identity is backfilled from the log entry only
      where the meta file left it unset. ``client_af`` is taken from
      ``local_af``, matching the historical tables.
    - ``StartTimeStamp`` is folded into microseconds with ``StartTimeUsec``.
    """
    log_entry = row.get_map(["web100_log_entry"])

    log_entry.substitute_string(False, ["connection_spec", "local_ip"], ["snap", "LocalAddress"])
    log_entry.substitute_string(False, ["connection_spec", "remote_ip"], ["snap", "RemAddress"])
    log_entry.substitute_int64(False, ["connection_spec", "local_af"], ["snap", "LocalAddressType"])

    row.substitute_string(True, ["connection_spec", "server_ip"],
                          ["web100_log_entry", "connection_spec", "local_ip"])
    row.substitute_int64(True, ["connection_spec", "server_af"],
                         ["web100_log_entry", "connection_spec", "local_af"])
    row.substitute_string(True, ["connection_spec", "client_ip"],
                          ["web100_log_entry", "connection_spec", "remote_ip"])
    row.substitute_int64(True, ["connection_spec", "client_af"],
                         ["web100_log_entry", "connection_spec", "local_af"])

    snap = log_entry.get_map(["snap"])
    start, ok = snap.get_int64(["StartTimeStamp"])
    if ok:
        start *= USEC_PER_SEC
        usec, ok = snap.get_int64(["StartTimeUsec"])
        if ok:
            start += usec
        snap.set_int64("StartTimeStamp", start)
