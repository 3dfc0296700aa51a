"""
Payload Processing Layer.

This package is responsible for payload file operations: streaming downloads
to disk and repackaging downloaded archives into a bundle.
"""

from .bundler import BundleSummary, build_bundle
from .downloader import stream_to_file

__all__ = ["BundleSummary", "build_bundle", "stream_to_file"]
