"""feed-curator - polls tracked feeds and surfaces new items for notification."""

__version__ = "0.1.0"
