"""
SQLAlchemy Models dla Alarms
Tabela: alarms
"""
from sqlalchemy import Column, String, Boolean, Integer, DateTime
from datetime import datetime

from .database import Base


class Alarm(Base):
    """
    Model alarmu współdzielonego przez wszystkie urządzenia.

    id jest nadawane przez bazę (autoincrement) i nie zmienia się później.
    """
    __tablename__ = 'alarms'

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    time = Column(String(5), nullable=False, index=True)  # Format: HH:MM
    enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        """Reprezentacja wysyłana przez HTTP i push channel"""
        return {
            "id": self.id,
            "title": self.title,
            "time": self.time,
            "enabled": bool(self.enabled),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Alarm(id={self.id}, time={self.time}, title={self.title})>"
