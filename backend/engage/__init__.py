"""Engage Social API — social feed domain and event layer of the engagement platform.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
