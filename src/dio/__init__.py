"""
dio: keep a local working copy of a versioned database in sync.

Pull a database from a DBHub.io style history service, edit it
locally, push it back as a new commit. Every downloaded version is
kept in a content-addressed cache next to the working copy.
"""

import os

__version__ = "0.2.0"
__author__ = "dio contributors"

DIO_CONFIG = os.environ.get("DIO_CONFIG", "~/.dio/config.yaml")
DEFAULT_CLOUD = "https://db4s.dbhub.io"
STATE_DIR = ".dio"
