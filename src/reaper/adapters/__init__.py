"""
Collaborator implementations for real clusters.

reaper.adapters.kubernetes needs the optional ``kubernetes`` dependency and is
not imported here.
"""
