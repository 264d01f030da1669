from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Index, Integer, Text, text
from sqlalchemy.orm import relationship

from ..core.lifecycle import ASSIGNMENT_ACTIVE
from ..db.session import Base


class Assignment(Base):
    """Custody of one asset by one employee between ``assigned_at`` and ``returned_at``.

    ``retired`` refines ``returned``: a retired assignment is a returned one
    whose asset left service at hand-back.
    """

    __tablename__ = "assignments"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    status = Column(Text, nullable=False, default=ASSIGNMENT_ACTIVE, index=True)
    notes = Column(Text, nullable=True)
    condition_on_assign = Column(Text, nullable=True)
    condition_on_return = Column(Text, nullable=True)
    assigned_at = Column(Text, nullable=False, index=True)
    assigned_by = Column(Text, nullable=True)
    returned_at = Column(Text, nullable=True, index=True)
    returned_by = Column(Text, nullable=True)
    retired = Column(Integer, nullable=False, default=0)
    retire_reason = Column(Text, nullable=True)
    updated_at = Column(Text, nullable=True)

    asset = relationship("Asset", lazy="joined")
    employee = relationship("Employee", lazy="joined")

    # At most one active assignment per asset, enforced by the database too.
    __table_args__ = (
        Index(
            "uq_assignments_one_active_per_asset",
            "asset_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    warnings: list[str]

    @property
    def asset_code(self) -> str | None:
        return self.asset.asset_id if self.asset else None

    @property
    def employee_code(self) -> str | None:
        return self.employee.employee_id if self.employee else None

    @property
    def employee_name(self) -> str | None:
        return self.employee.name if self.employee else None

    def snapshot(self) -> dict[str, object]:
        asset = self.asset
        data: dict[str, object] = {
            "assignment_id": self.id,
            "asset_db_id": self.asset_id,
            "asset_code": self.asset_code,
            "serial_number": asset.serial_number if asset else None,
            "asset_type": asset.asset_type if asset else None,
            "brand": asset.brand if asset else None,
            "model": asset.model if asset else None,
            "employee_id": self.employee_code,
            "employee_name": self.employee_name,
            "status": self.status,
            "notes": self.notes,
            "condition_on_assign": self.condition_on_assign,
            "assigned_at": self.assigned_at,
            "assigned_by": self.assigned_by,
        }
        if self.returned_at:
            data.update(
                {
                    "condition_on_return": self.condition_on_return,
                    "returned_at": self.returned_at,
                    "returned_by": self.returned_by,
                    "retired": bool(self.retired),
                    "retire_reason": self.retire_reason,
                }
            )
        return data
