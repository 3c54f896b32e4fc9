"""
Pydantic record schemas with validation.

Readers validate raw rows into these models; a validation failure is a
malformed record. Records are frozen once read.
"""

from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime
from decimal import Decimal


class CustomerRecord(BaseModel):
    """Customer row as read from the customer table, JSON or XML files"""

    id: int
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    age: Optional[int] = Field(None, ge=0)
    created_at: Optional[datetime] = None

    @validator("first_name", "last_name", "email")
    def strip_text(cls, v):
        """Strip surrounding whitespace"""
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be empty after stripping")
        return v

    class Config:
        frozen = True
        # JSON/XML sources use camelCase keys, table rows use column names
        alias_generator = to_camel
        populate_by_name = True


class CustomerProcessedRecord(BaseModel):
    """Re-shaped customer written to customer_processed"""

    customer_id: int
    full_name: str = Field(..., min_length=1, max_length=201)
    email: str
    age: Optional[int] = None
    processed_at: datetime

    class Config:
        frozen = True


class ProductRecord(BaseModel):
    """Product row as read from the product table, CSV files or a literal list"""

    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=200)
    price: Optional[Decimal] = Field(None, ge=0)
    category: Optional[str] = Field(None, max_length=100)
    stock: Optional[int] = Field(None, ge=0)

    @validator("name")
    def clean_name(cls, v):
        """Clean and normalize name"""
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty after stripping")
        return v

    @validator("price", "stock", "category", pre=True)
    def blank_to_none(cls, v):
        """Empty CSV cells map to missing values"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    class Config:
        frozen = True
