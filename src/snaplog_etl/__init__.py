"""`snaplog_etl` - NDT snapshot-log decoding and test correlation.

Subpackages:
- web100: Variable schema, field codec, snapshot logs
- parser: Filename grammar, meta sidecars, test correlator
- pipeline: Archive sources, row sink, tracker, scanner, processor, orchestrator
- schemas: Layered pydantic configuration
- contracts: Output-row invariants
"""

__version__ = "0.1.0"
