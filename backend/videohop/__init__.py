"""videohop - resumable multi-platform video uploads"""

__version__ = "1.0.0"
