from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from fxrates import Base


class MarginHistory(Base):
    """Audit trail entry for a single margin timeline change"""

    __tablename__ = "margin_histories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    # Plain ids, entries outlive the margins they describe
    old_margin_id = Column(Integer, nullable=True, index=True)
    new_margin_id = Column(Integer, nullable=True)
    action = Column(String(20), nullable=False)  # CREATED, UPDATED, CLOSED, SHIFTED, DELETED
    changed_at = Column(DateTime, nullable=False, server_default=func.now())
    comment = Column(String(255))

    def __repr__(self):
        return f"<MarginHistory(id={self.id}, action='{self.action}', " \
               f"old={self.old_margin_id}, new={self.new_margin_id})>"


class MarginTimelineLock(Base):
    """Single row locked FOR UPDATE to serialize margin timeline writers"""

    __tablename__ = "margin_timeline_locks"

    id = Column(Integer, primary_key=True, autoincrement=False)
