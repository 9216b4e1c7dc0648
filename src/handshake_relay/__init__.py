"""Two-phase verification handshake relay."""
