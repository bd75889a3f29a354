"""
Achievement (badge) evaluation engine for the wellness app.

Decides which achievements a user newly qualifies for from their task and
health-log history, unlocks each exactly once, and reports progress toward
the rest.
"""

__version__ = "0.1.0"
