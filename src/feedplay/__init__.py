"""Follow video feeds and play what they publish."""

__version__ = "0.1.0"
