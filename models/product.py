from sqlalchemy import Column, BigInteger, Integer, String, Numeric
from models.base import Base


class Product(Base):
    """
    Sample product table.

    Read by the product-cursor step. The file and list steps update price
    by name (keyed update, one batched statement per chunk).
    """
    __tablename__ = "product"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    name = Column(String(200), nullable=False, unique=True)
    price = Column(Numeric(14, 2), nullable=True)
    category = Column(String(100), nullable=True)
    stock = Column(Integer, nullable=True)
