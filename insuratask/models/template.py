"""Recurring task templates and their execution audit rows"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from insuratask.core.database import Base


class Template(Base):
    __tablename__ = "templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False)
    title_template = Column(String(200), nullable=False)
    description_template = Column(Text, nullable=True)
    priority = Column(String(20), nullable=False, default="medium")
    recurrence_config = Column(JSON, nullable=True)  # {type, interval, days_of_week, day_of_month, time, end_date}
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    instances = relationship(
        "TemplateInstance",
        back_populates="template",
        cascade="all, delete-orphan",
        passive_deletes=True
    )


class TemplateInstance(Base):
    __tablename__ = "template_instances"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("templates.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    scheduled_date = Column(String(10), nullable=False)  # YYYY-MM-DD
    executed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    template = relationship("Template", back_populates="instances")
