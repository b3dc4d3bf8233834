"""Retrieve-based workflows that bring the local mirror in line with the server.

Two apply strategies exist:
- Replace: swap the whole live source tree for the freshly retrieved one
- Splice: copy retrieved files over their live counterparts one by one
"""
