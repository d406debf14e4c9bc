"""Infrastructure Layer — database, event dispatch, storage backends, logging.

Invariants:
    - Infrastructure never owns business rules; it stores and dispatches
"""
