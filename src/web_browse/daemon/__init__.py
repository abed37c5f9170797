"""Persistent local daemon holding one browser session, and its client."""
