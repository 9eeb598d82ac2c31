"""
StormDesk - Restoration contractor backend.
"""
__version__ = "1.0.0"
