"""Adapters that implement the core ports with files, TCP sockets, and System V segments."""
