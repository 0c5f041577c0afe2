"""Resolve, fetch, extract and merge pipeline.

Import from the submodules directly (rx.pipeline.orchestrator,
rx.pipeline.fetcher, ...); this package re-exports nothing.
"""
