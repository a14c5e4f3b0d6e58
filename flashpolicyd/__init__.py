"""
A Twisted daemon which serves a static cross-domain policy file.
"""

__version__ = "1.0.0"
