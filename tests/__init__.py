# boxwire test suite
"""
Unit tests for framing, crypto and key files, plus loopback TCP tests for
channels, the handshake, the listener and the initiator.

Run with: pytest
"""
