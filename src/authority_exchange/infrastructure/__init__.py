"""Adapters for persistence, the session store and notification delivery."""
