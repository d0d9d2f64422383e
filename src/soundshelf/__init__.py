"""soundshelf - music library catalog and scanning engine."""

__version__ = "0.1.0"
