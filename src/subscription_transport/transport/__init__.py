"""Transport layer: one stream reader per subscription transport medium."""

from subscription_transport.transport.base import LookaheadStreamReader, StreamReader
from subscription_transport.transport.local import LocalFileStreamReader
from subscription_transport.transport.mongo import MongoConnection, MongoStreamReader, QueryWindow
from subscription_transport.transport.remote import RemoteFileCache, RemoteFileStreamReader
from subscription_transport.transport.rest import RestStreamReader

__all__ = [
    "LocalFileStreamReader",
    "LookaheadStreamReader",
    "MongoConnection",
    "MongoStreamReader",
    "QueryWindow",
    "RemoteFileCache",
    "RemoteFileStreamReader",
    "RestStreamReader",
    "StreamReader",
]
