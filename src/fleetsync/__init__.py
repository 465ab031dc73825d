"""
fleetsync: keeps the operations database and its Airtable base in sync.
"""

from .version import __version__

__all__ = ["__version__"]
