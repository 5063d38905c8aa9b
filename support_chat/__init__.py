"""
Support chat backend: session-scoped message turns with bounded history.
"""
