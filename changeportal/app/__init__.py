"""Composition root and command line for the portal client."""
