from sqlalchemy import create_engine, or_
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fxrates.core.constants import *
from fxrates import logger
from fxrates import Base
from fxrates.margins.timeline import MarginSpan, Bounded, window_from

# Import models to register with SQLAlchemy
from fxrates.margins.models.user import User
from fxrates.margins.models.margin import Margin
from fxrates.margins.models.currency_rate import Currency, CurrencyRate
from fxrates.margins.models.margin_history import MarginHistory, MarginTimelineLock


class MarginDatabaseManager:
    """Database manager for the margin timeline - uses SQLAlchemy declarative models"""

    def __init__(self, application_context):
        if application_context is None:
            raise ValueError("application_context is REQUIRED")

        self.application_context = application_context
        self.state_manager = application_context.state_manager

        database_url = self.state_manager.get_config_value(CONFIG_DATABASE_URL)
        if not database_url:
            raise ValueError("database_url is REQUIRED")

        self.engine = self._create_engine(database_url)
        self.Session = sessionmaker(bind=self.engine)

        # SQLAlchemy will create all tables from imported models
        Base.metadata.create_all(bind=self.engine)
        self._ensure_timeline_lock()

        logger.info("MarginDatabaseManager initialized - tables created from models")

    def _create_engine(self, database_url):
        if database_url.startswith("sqlite"):
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                return create_engine(database_url,
                                     connect_args={"check_same_thread": False},
                                     poolclass=StaticPool)
            return create_engine(database_url, connect_args={"check_same_thread": False})
        return create_engine(database_url, pool_pre_ping=True)

    def _ensure_timeline_lock(self):
        session = self.get_session()
        try:
            if session.get(MarginTimelineLock, TIMELINE_LOCK_ID) is None:
                session.add(MarginTimelineLock(id=TIMELINE_LOCK_ID))
                session.commit()
        finally:
            session.close()

    def get_session(self):
        """Get a database session"""
        return self.Session()

    # Timeline reads
    @staticmethod
    def to_span(margin):
        return MarginSpan(id=margin.id, value=margin.value,
                          window=window_from(margin.start_date, margin.end_date))

    def lock_timeline(self, session):
        """Serialize margin writers on the timeline lock row (no-op on SQLite)"""
        session.query(MarginTimelineLock)\
            .filter(MarginTimelineLock.id == TIMELINE_LOCK_ID)\
            .with_for_update()\
            .one()

    def load_spans(self, session, exclude_id=None):
        """
        Load the margin timeline ordered by start date

        Args:
            session: Open session (required)
            exclude_id: Margin to leave out, used when updating that margin

        Returns:
            List of MarginSpan
        """
        query = session.query(Margin)
        if exclude_id is not None:
            query = query.filter(Margin.id != exclude_id)
        return [self.to_span(m) for m in query.order_by(Margin.start_date.asc()).all()]

    def get_margin(self, session, margin_id):
        if margin_id is None:
            raise ValueError("margin_id is REQUIRED")
        return session.get(Margin, margin_id)

    def get_margins(self, active_on=None):
        """
        Get margins ordered by start date descending

        Args:
            active_on: If set, only margins effective on this date

        Returns:
            List of Margin objects (owner loaded)
        """
        session = self.get_session()
        try:
            query = session.query(Margin)
            if active_on is not None:
                query = query.filter(Margin.start_date <= active_on)\
                    .filter(or_(Margin.end_date.is_(None), Margin.end_date >= active_on))
            return query.order_by(Margin.start_date.desc(),
                                  Margin.end_date.desc(),
                                  Margin.id.desc()).all()
        finally:
            session.close()

    def get_margin_history(self):
        """Get all margins ordered by start date ascending"""
        session = self.get_session()
        try:
            return session.query(Margin).order_by(Margin.start_date.asc()).all()
        finally:
            session.close()

    def find_margin_for_date(self, day, session=None):
        """
        Get the margin effective on a date

        Returns:
            Margin object or None if no margin covers the date
        """
        if day is None:
            raise ValueError("day is REQUIRED")

        own_session = session is None
        session = session or self.get_session()
        try:
            return session.query(Margin)\
                .filter(Margin.start_date <= day)\
                .filter(or_(Margin.end_date.is_(None), Margin.end_date >= day))\
                .order_by(Margin.start_date.desc())\
                .first()
        finally:
            if own_session:
                session.close()

    # Interval store writes
    def insert_margin(self, session, value, window, user_id):
        margin = Margin(value=value,
                        start_date=window.start,
                        end_date=window.end_or_none,
                        user_id=user_id)
        session.add(margin)
        session.flush()
        logger.debug(f"margin inserted: {margin}")
        return margin

    def update_margin(self, session, margin, value, window, user_id):
        margin.value = value
        margin.start_date = window.start
        margin.end_date = window.end_or_none
        margin.user_id = user_id
        session.flush()
        logger.debug(f"margin updated: {margin}")
        return margin

    def close_margin(self, session, margin_id, new_end):
        session.query(Margin).filter(Margin.id == margin_id)\
            .update({Margin.end_date: new_end}, synchronize_session=False)

    def shift_margin(self, session, margin_id, new_start):
        session.query(Margin).filter(Margin.id == margin_id)\
            .update({Margin.start_date: new_start}, synchronize_session=False)

    def delete_margins(self, session, margin_ids):
        if not margin_ids:
            return 0
        return session.query(Margin).filter(Margin.id.in_(margin_ids))\
            .delete(synchronize_session=False)

    # Linkage table writes
    def clear_links(self, session, margin_ids, after=None, before=None):
        """
        Clear margin_id of observations linked to the given margins

        Args:
            session: Open session (required)
            margin_ids: Margins whose links are cleared (required)
            after: Only observations dated strictly after this date
            before: Only observations dated strictly before this date

        Returns:
            Number of observations changed
        """
        if not margin_ids:
            return 0
        query = session.query(CurrencyRate).filter(CurrencyRate.margin_id.in_(margin_ids))
        if after is not None:
            query = query.filter(CurrencyRate.date > after)
        if before is not None:
            query = query.filter(CurrencyRate.date < before)
        return query.update({CurrencyRate.margin_id: None}, synchronize_session=False)

    def clear_links_outside(self, session, margin_id, window):
        """Clear links of a margin for observations outside its window"""
        outside = CurrencyRate.date < window.start
        if isinstance(window, Bounded):
            outside = or_(outside, CurrencyRate.date > window.end)
        return session.query(CurrencyRate)\
            .filter(CurrencyRate.margin_id == margin_id)\
            .filter(outside)\
            .update({CurrencyRate.margin_id: None}, synchronize_session=False)

    def link_window(self, session, margin_id, window):
        """Point every observation inside the window at the margin"""
        query = session.query(CurrencyRate).filter(CurrencyRate.date >= window.start)
        if isinstance(window, Bounded):
            query = query.filter(CurrencyRate.date <= window.end)
        return query.update({CurrencyRate.margin_id: margin_id}, synchronize_session=False)

    def load_observations(self, session):
        """Return (id, date, margin_id) for every rate observation"""
        return session.query(CurrencyRate.id, CurrencyRate.date, CurrencyRate.margin_id).all()

    def set_link(self, session, observation_id, margin_id):
        session.query(CurrencyRate).filter(CurrencyRate.id == observation_id)\
            .update({CurrencyRate.margin_id: margin_id}, synchronize_session=False)

    # Audit trail
    def add_history(self, session, action, user_id, old_margin_id=None, new_margin_id=None, comment=None):
        entry = MarginHistory(action=action,
                              user_id=user_id,
                              old_margin_id=old_margin_id,
                              new_margin_id=new_margin_id,
                              comment=comment)
        session.add(entry)
        return entry

    def get_changes(self, limit):
        """Get the newest audit entries first"""
        if limit is None or limit <= 0:
            raise ValueError(f"limit must be positive, got: {limit}")

        session = self.get_session()
        try:
            return session.query(MarginHistory)\
                .order_by(MarginHistory.id.desc())\
                .limit(limit)\
                .all()
        finally:
            session.close()

    # Rate ingestion helpers
    def save_currency(self, currency_code):
        """Get or create a currency by code, returns its id"""
        if not currency_code:
            raise ValueError("currency_code is REQUIRED")

        session = self.get_session()
        try:
            currency = session.query(Currency).filter_by(currency_code=currency_code).first()
            if currency is None:
                currency = Currency(currency_code=currency_code)
                session.add(currency)
                session.commit()
                logger.info(f"currency created: {currency_code}")
            return currency.id
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to save currency {currency_code}: {e}")
            raise
        finally:
            session.close()

    def save_rate(self, to_currency_id, day, exchange_rate):
        """
        Store a rate observation linked to the margin effective on its date

        Args:
            to_currency_id: Currency id (required)
            day: Observation date (required)
            exchange_rate: EUR-anchored rate (required)

        Returns:
            Id of the stored observation
        """
        if to_currency_id is None:
            raise ValueError("to_currency_id is REQUIRED")
        if day is None:
            raise ValueError("day is REQUIRED")
        if exchange_rate is None:
            raise ValueError("exchange_rate is REQUIRED")

        session = self.get_session()
        try:
            margin = self.find_margin_for_date(day, session=session)
            rate = CurrencyRate(date=day,
                                to_currency_id=to_currency_id,
                                exchange_rate=exchange_rate,
                                margin_id=margin.id if margin else None)
            session.add(rate)
            session.commit()
            return rate.id
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to save rate for currency {to_currency_id} on {day}: {e}")
            raise
        finally:
            session.close()

    def save_user(self, email, first_name=None, last_name=None, role="user"):
        if not email:
            raise ValueError("email is REQUIRED")

        session = self.get_session()
        try:
            user = User(email=email, first_name=first_name, last_name=last_name, role=role)
            session.add(user)
            session.commit()
            return user.id
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to save user {email}: {e}")
            raise
        finally:
            session.close()
