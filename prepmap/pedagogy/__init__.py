"""Pedagogy layer - prerequisite ordering and unlock rules."""

from prepmap.pedagogy.dependency_resolver import DependencyResolver

__all__ = ["DependencyResolver"]
