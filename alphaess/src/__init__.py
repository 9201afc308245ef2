"""
AlphaESS monitoring daemon package.

Polls the AlphaESS Open API for a single storage system, keeps tiered
in-memory statistics caches, and emits a normalized view of the latest
real-time reading combined with today's energy totals.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""
