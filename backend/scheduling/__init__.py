"""Recurring class-series generation and conflict detection.

Pure engine code: persistence, availability, policy storage and warning
delivery are reached through the protocols in `scheduling.ports`.
"""
