"""
Clawtar
Payment-gated task service settled in Cashu ecash
"""

__version__ = "0.1.0"
