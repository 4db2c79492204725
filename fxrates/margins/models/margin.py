"""
Margin Model - validity intervals of the margin applied on top of raw rates

A margin is effective from start_date through end_date (both inclusive).
A NULL end_date means the margin is open-ended.
"""

from sqlalchemy import Column, Integer, Date, DateTime, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from fxrates import Base


class Margin(Base):
    """Margin validity interval"""

    __tablename__ = "margins"
    __table_args__ = (
        UniqueConstraint('start_date', name='uix_margin_start_date'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    value = Column(Numeric(7, 6), nullable=False)  # Decimal fraction, 0.02 = 2%
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)  # NULL = open-ended
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", lazy="joined")

    def __repr__(self):
        return f"<Margin(id={self.id}, value={self.value}, " \
               f"start='{self.start_date}', end='{self.end_date}')>"
