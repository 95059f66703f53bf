"""
Class Models

Teaching assignments: which teacher teaches a subject in which class.
Only the pieces needed to answer "does this teacher teach this class" live here.
"""

import uuid

from sqlalchemy import Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from onboarding.modules.shared import BaseModel


class ClassSubject(BaseModel):
    """A subject taught in a class by one teacher."""

    __tablename__ = "class_subjects"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    class_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    teacher_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (Index("ix_class_subjects_teacher_class", "teacher_id", "class_id"),)

    def __repr__(self) -> str:
        return (
            f"<ClassSubject(class_id={self.class_id}, teacher_id={self.teacher_id}, "
            f"name={self.name})>"
        )
