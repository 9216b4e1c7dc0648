"""Handshake correlation core: records, extraction, engine and upstream client."""
