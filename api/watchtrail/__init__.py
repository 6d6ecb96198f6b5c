"""Watchtrail API: personal media watch tracking."""
