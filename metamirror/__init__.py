"""metamirror — keeps a local on-disk mirror of a remote metadata repository.

Retrieve workflows pull metadata from the remote platform into the project's
``src`` tree; deploy workflows push local changes (and deletions) back.
"""

__version__ = "0.3.0"
