"""Pomosync server: time-entry API and timer event relay."""
