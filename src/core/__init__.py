"""Core domain package for dualprobe.

Core contains discovery, connection, classification, collection, and the
server session lifecycle without any socket or shared-memory specific code,
keeping the protocol logic portable and testable with fakes.
"""
