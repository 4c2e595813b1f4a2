"""
Deterministic contract deployment through a CREATE2 factory
"""

__version__ = "0.1.0"
