"""
GDELT DOC API data source.
"""

from gateway.datasource.gdelt import Article, GdeltMode, GdeltSource

__all__ = ["Article", "GdeltMode", "GdeltSource"]
