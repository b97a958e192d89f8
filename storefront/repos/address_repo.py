from sqlalchemy import update
from sqlalchemy.orm import Session

from storefront.data.models.address import AddressModel


class AddressRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_address(self, address_id: int) -> AddressModel | None:
        return self.db.get(AddressModel, address_id)

    def create_address(self, address: AddressModel) -> AddressModel:
        self.db.add(address)
        self.db.flush()
        return address

    def clear_default(self, user_id: int, address_type: str) -> None:
        self.db.execute(
            update(AddressModel)
            .where(
                AddressModel.user_id == user_id,
                AddressModel.address_type == address_type,
                AddressModel.is_default.is_(True),
            )
            .values(is_default=False)
        )
