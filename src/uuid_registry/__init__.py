"""
UUID Registry - Time-ordered, collision-checked identifiers for EHR records

Issues timestamp-first COMB uuids, records every issued value in a central
registry table, and backfills uuids into existing rows of tracked tables,
including vertical tables keyed by several columns.
"""

from uuid_registry.registry import UuidRegistry

__version__ = "0.1.0"
__all__ = ["UuidRegistry", "__version__"]
