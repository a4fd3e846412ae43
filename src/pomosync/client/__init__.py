"""Pomosync client: timer engine, sync channel and CLI."""
