"""Residual revenue assignment, validation and audit pipeline"""

__version__ = "0.1.0"
