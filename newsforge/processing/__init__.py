"""
NewsForge Processing Module
===========================

Field derivation, the per-entry article transformer, request pacing and
the import orchestrator. Import submodules directly.
"""
