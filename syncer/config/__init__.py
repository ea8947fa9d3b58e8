"""
Configuration — SYNCER_* environment loading and the SyncConfiguration model.
"""
