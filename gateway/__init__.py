"""
Shared, rate-limited gateway in front of the GDELT DOC API.
"""

__version__ = "0.1.0"
