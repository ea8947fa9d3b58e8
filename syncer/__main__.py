"""
Run the syncer directly.

Usage:
    python -m syncer
"""

from .main import main

if __name__ == "__main__":
    main()
