"""
Entry point for running the pipeline as a module.

Usage:
    python -m erp_unfold --input-dir /path/to/raw --output /path/to/out [arguments]
"""

from erp_unfold.pipeline import main

if __name__ == "__main__":
    main()
