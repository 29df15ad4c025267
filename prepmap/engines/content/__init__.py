"""Content ingest - validated, structurally shared content snapshots."""

from prepmap.engines.content.ingest import compute_content_hash, ingest, topological_order

__all__ = ["compute_content_hash", "ingest", "topological_order"]
