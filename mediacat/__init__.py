"""
mediacat - local relational catalog for a media-browsing client.

Stores remote streams, local playlists with ordered memberships, bookmarked
remote playlists and channel subscriptions in SQLite.
"""

__version__ = "0.1.0"
__author__ = "mediacat Contributors"
__license__ = "GPL-2.0"

from mediacat.core.catalog import MediaCatalog
from mediacat.core.catalog_db import CatalogDb

__all__ = ["CatalogDb", "MediaCatalog", "__version__"]
