"""
Engine — Reconciliation state machine and the interval scheduler.
"""
