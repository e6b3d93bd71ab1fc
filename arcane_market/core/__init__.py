"""Core primitives shared by every market component (events, rounding).

Kept free of component state so tests and the tick driver can use them directly.
"""
