"""Task model"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean
from datetime import datetime
from insuratask.core.database import Base


TASK_CATEGORIES = {
    "calls": "Chiamate clienti",
    "quotes": "Quotazioni",
    "claims": "Sinistri",
    "documents": "Documentazione",
    "appointments": "Appuntamenti"
}

PRIORITY_LEVELS = {
    "low": "Bassa",
    "medium": "Media",
    "high": "Alta"
}

STATUS_TYPES = {
    "pending": "In attesa",
    "completed": "Completata",
    "overdue": "In ritardo"
}


class Task(Base):
    __tablename__ = "tasks"
    
    id = Column(Integer, primary_key=True, index=True)
    
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, index=True)
    client = Column(Text, nullable=True)
    priority = Column(String(20), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="pending", index=True)
    
    due_date = Column(String(10), nullable=True, index=True)  # YYYY-MM-DD
    due_time = Column(String(5), nullable=True)  # HH:MM
    
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
