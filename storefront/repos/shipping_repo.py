# storefront/repos/shipping_repo.py
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.data.models.shipping_city import ShippingCityModel


class ShippingRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_city(self, city_id: int) -> ShippingCityModel | None:
        return self.db.get(ShippingCityModel, city_id)

    def list_active(self) -> List[ShippingCityModel]:
        return list(
            self.db.execute(
                select(ShippingCityModel)
                .where(ShippingCityModel.is_active.is_(True))
                .order_by(ShippingCityModel.city_name)
            ).scalars()
        )
