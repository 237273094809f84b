"""SQLAlchemy model for existing products table (READ-ONLY)."""

from sqlalchemy import Column, String, Text

from authenticity.database import Base


class Product(Base):
    """Maps to the existing 'products' table. Read-only access."""

    __tablename__ = "products"

    id = Column(String(128), primary_key=True)
    name = Column(Text)
    sku = Column(String(100))
    category = Column(String(100))
    status = Column(String(30))  # active / inactive / recalled
    manufacturer_id = Column(String(128))
    org_id = Column(String(128))
