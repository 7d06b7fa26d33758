"""Opinion Map - clusters social-media posts into opinion groups."""

__version__ = "0.1.0"
