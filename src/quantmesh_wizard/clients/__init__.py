"""Remote collaborators backed by the trading bot's web API."""

from .backend import BackendClient, BackendError

__all__ = ["BackendClient", "BackendError"]
