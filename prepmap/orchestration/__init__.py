"""Orchestration layer - the query facade consumed by the UI."""

from prepmap.orchestration.query_facade import QueryFacade

__all__ = ["QueryFacade"]
