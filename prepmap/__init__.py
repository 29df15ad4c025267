"""
prepmap - roadmap hierarchy & progress tracking engine.

Role -> level -> topic roadmaps with prerequisite locks, per-user progress
and a stale-while-revalidate cache over the content backend.
"""

__version__ = "1.0.0"
