"""
Item writers: one batched persistence operation per chunk
"""

from batch.writers.base import ItemWriter
from batch.writers.database import InsertItemWriter, SqlItemWriter, UpdateItemWriter, UpsertItemWriter

__all__ = [
    "ItemWriter",
    "SqlItemWriter",
    "InsertItemWriter",
    "UpdateItemWriter",
    "UpsertItemWriter",
]
