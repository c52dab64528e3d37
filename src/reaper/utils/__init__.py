"""
Reaper utilities.

reaper.utils.testing provides in-memory collaborators for tests.
"""
