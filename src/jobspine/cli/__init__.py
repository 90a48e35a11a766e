"""
CLI layer for jobspine.

Terminal transport only: argument parsing, coloured output, the live
dashboard. Engine behaviour lives in the library.

Entry point::

    jobspine --help
"""

from jobspine.cli.app import app

__all__ = ["app"]
