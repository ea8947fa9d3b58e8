"""
Syncer — Keep a local directory mirrored to a remote git branch or tag.
"""

__version__ = "0.11.0"
