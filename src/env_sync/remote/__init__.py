from env_sync.remote.auth import build_http_client
from env_sync.remote.base import RemoteStore
from env_sync.remote.http import HttpRemoteStore

__all__ = [
    "HttpRemoteStore",
    "RemoteStore",
    "build_http_client",
]
