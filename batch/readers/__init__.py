"""
Item readers: pull-based sources with open/read/checkpoint/close.

Variants:
    CursorItemReader: one server-side cursor, row by row
    PagingItemReader: LIMIT/OFFSET pages served from a buffer
    MultiResourceItemReader: ordered resources behind one stream
    ListItemReader: static in-memory list
    FlatFileItemReader / JsonItemReader / XmlItemReader: file resources
"""

from batch.readers.base import CountingItemReader, ItemReader, ReaderHints
from batch.readers.database import CursorItemReader, PagingItemReader
from batch.readers.files import FlatFileItemReader, JsonItemReader, XmlItemReader, list_resources
from batch.readers.memory import ListItemReader
from batch.readers.multi_resource import MultiResourceItemReader

__all__ = [
    "ItemReader",
    "CountingItemReader",
    "ReaderHints",
    "CursorItemReader",
    "PagingItemReader",
    "FlatFileItemReader",
    "JsonItemReader",
    "XmlItemReader",
    "ListItemReader",
    "MultiResourceItemReader",
    "list_resources",
]
