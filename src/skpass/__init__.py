"""
SKPass — Sovereign Secret Store.

Encrypted secrets in a tree of mounts. Every mount has its own
recipients and its own git history. No server. No cloud account.
Your keys decide who reads what.

A smilinTux Open Source Project.
"""

import os

__version__ = "0.1.0"
__author__ = "smilinTux"

SKPASS_HOME = os.environ.get("SKPASS_HOME", "~/.skpass")
