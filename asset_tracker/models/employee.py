from __future__ import annotations

from sqlalchemy import Column, Integer, Text

from ..db.session import Base


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Text, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    department = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.employee_id})"
