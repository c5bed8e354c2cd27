"""Spotify Web API integration (OAuth PKCE, async).

- auth.py: authorization flow and token lifecycle
- token_manager.py: credential persistence behind a key/value store
- client.py: request wrapper (bearer token, 429 retry, error mapping)
- data_loader.py: cursor pagination and batched audio features
"""

from .auth import SpotifyPKCEAuth
from .client import SpotifyClient
from .data_loader import SpotifyDataLoader
from .token_manager import CredentialStore, JsonFileStore, MemoryStore

__all__ = [
    "CredentialStore",
    "JsonFileStore",
    "MemoryStore",
    "SpotifyPKCEAuth",
    "SpotifyClient",
    "SpotifyDataLoader",
]
