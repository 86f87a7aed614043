"""QuickBooks Online token keeper: OAuth connect flow and background token refresher."""

__version__ = "1.0.0"
