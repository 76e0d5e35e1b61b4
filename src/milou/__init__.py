"""
Milou: secret-bearing configuration store and backups.

Keeps the deployment's .env file, TLS key material and compose files
safe on disk: every write is atomic, every secret file carries the
permissions it must have, and every snapshot can be restored.
"""

import os

__version__ = "2.0.0"
__author__ = "Milou"

MILOU_HOME = os.environ.get("MILOU_HOME", "~/milou")
