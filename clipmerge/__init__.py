"""
ClipMerge: merges trimmed ranges of uploaded videos into one MP4.
"""

__version__ = "1.0.0"
