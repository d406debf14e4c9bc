"""Service Layer — orchestrates core rules, storage backends and the event system.
"""
