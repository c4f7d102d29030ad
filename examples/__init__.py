"""Example tool modules for the consultant chat client."""
