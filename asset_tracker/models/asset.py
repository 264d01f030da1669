from __future__ import annotations

from sqlalchemy import Column, Integer, Text

from ..core.lifecycle import ASSET_ACTIVE
from ..db.session import Base


class Asset(Base):
    """A tracked piece of equipment.

    ``version`` is SQLAlchemy's optimistic lock: every UPDATE is issued as
    ``... WHERE id = ? AND version = ?`` and a writer that lost the race gets a
    ``StaleDataError`` instead of silently overwriting the winner.
    """

    __tablename__ = "assets"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Text, nullable=False, unique=True, index=True)
    serial_number = Column(Text, nullable=False, unique=True, index=True)
    asset_type = Column(Text, nullable=False, index=True)
    type_detail = Column(Text, nullable=True)
    brand = Column(Text, nullable=True)
    model = Column(Text, nullable=True)

    # Laptop-only hardware details
    cpu = Column(Text, nullable=True)
    ram = Column(Text, nullable=True)
    storage = Column(Text, nullable=True)
    os = Column(Text, nullable=True)
    gpu = Column(Text, nullable=True)

    location = Column(Text, nullable=True)
    purchase_date = Column(Text, nullable=True)
    warranty_expiry = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default=ASSET_ACTIVE, index=True)
    retire_reason = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_by = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=True)

    __mapper_args__ = {"version_id_col": version}

    warnings: list[str]

    def snapshot(self) -> dict[str, object]:
        """Fields copied into audit metadata so history survives later edits."""

        return {
            "asset_db_id": self.id,
            "asset_id": self.asset_id,
            "asset_code": self.asset_id,
            "serial_number": self.serial_number,
            "asset_type": self.asset_type,
            "type_detail": self.type_detail,
            "brand": self.brand,
            "model": self.model,
            "status": self.status,
        }
