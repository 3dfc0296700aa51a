"""
levelfetch: batch downloader and bundler for level payloads.
"""

__version__ = "0.3.0"
