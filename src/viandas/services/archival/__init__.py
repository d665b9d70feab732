"""Archival of aged daily menus into the archive store."""

from viandas.services.archival.engine import (
    ArchivalError,
    ArchivalStats,
    cutoff_for,
    make_archival_tick,
    run_archival_cycle,
)

__all__ = [
    "ArchivalError",
    "ArchivalStats",
    "cutoff_for",
    "make_archival_tick",
    "run_archival_cycle",
]
