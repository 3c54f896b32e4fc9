from sqlalchemy import Column, BigInteger, Integer, String, DateTime
from models.base import Base, BigIntegerPK, utcnow


class Customer(Base):
    """Sample source table read by the cursor and paging steps"""
    __tablename__ = "customer"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    age = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=True, default=utcnow)


class CustomerProcessed(Base):
    """Sink table written once per chunk by the customer steps"""
    __tablename__ = "customer_processed"

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    customer_id = Column(BigInteger, nullable=False, index=True)
    full_name = Column(String(201), nullable=False)
    email = Column(String(255), nullable=False)
    age = Column(Integer, nullable=True)
    processed_at = Column(DateTime, nullable=False)
