# storefront/data/models/shipping_city.py
from sqlalchemy import Column, Integer, String, Boolean, Numeric

from storefront.data.database import Base


class ShippingCityModel(Base):
    __tablename__ = "shipping_cities"

    id = Column(Integer, primary_key=True)
    city_name = Column(String(100), nullable=False)
    shipping_cost = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
