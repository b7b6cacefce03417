"""
Accounts owned by a zero-knowledge proof of email ownership.
"""

__version__ = "1.0.0"
