"""CRAQ chain-replicated file storage: manager, chain nodes, gRPC transport and client."""

__version__ = "0.1.0"