from sqlalchemy import Column, Integer, String, Date, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from fxrates import Base


class Currency(Base):
    """Quoted currency, rates are EUR-anchored"""

    __tablename__ = "currencies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    currency_code = Column(String(3), nullable=False, unique=True)

    def __repr__(self):
        return f"<Currency(id={self.id}, code='{self.currency_code}')>"


class CurrencyRate(Base):
    """
    Daily rate observation for one currency.

    margin_id points at the margin effective on `date`, or is NULL when no
    margin covers the date. Rows are written by the rate ingestion process;
    only the margin service changes margin_id afterwards.
    """

    __tablename__ = "currency_rates"
    __table_args__ = (
        UniqueConstraint('date', 'to_currency_id', name='uix_currency_rate_date_currency'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, index=True)
    to_currency_id = Column(Integer, ForeignKey('currencies.id', ondelete='RESTRICT'), nullable=False)
    exchange_rate = Column(Numeric(18, 6), nullable=False)
    margin_id = Column(Integer, ForeignKey('margins.id', ondelete='SET NULL'), nullable=True, index=True)

    to_currency = relationship("Currency")

    def __repr__(self):
        return f"<CurrencyRate(id={self.id}, date='{self.date}', " \
               f"currency={self.to_currency_id}, rate={self.exchange_rate}, margin={self.margin_id})>"
