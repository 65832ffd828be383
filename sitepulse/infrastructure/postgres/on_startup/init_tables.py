from sqlalchemy import JSON, BigInteger, Boolean, Column, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SessionTable(Base):
    __tablename__ = 'sessions'
    __table_args__ = (
        Index('idx_sessions_start_time', 'start_time'),
        Index('idx_sessions_device', 'device'),
        Index('idx_sessions_country', 'country'),
        Index('idx_sessions_city', 'city'),
        Index('idx_sessions_location', 'latitude', 'longitude'),
    )

    session_id = Column(String(64), primary_key=True)
    start_time = Column(BigInteger, nullable=False)
    end_time = Column(BigInteger)
    total_time_ms = Column(BigInteger, nullable=False, default=0)
    page_count = Column(Integer, nullable=False, default=1)
    is_bounce = Column(Boolean, nullable=False, default=True)
    is_returning = Column(Boolean, nullable=False, default=False)
    device = Column(String(32))
    browser = Column(String(64))
    os = Column(String(64))
    country = Column(String(64))
    city = Column(String(128))
    latitude = Column(Float)
    longitude = Column(Float)
    referrer = Column(Text)
    utm_source = Column(String(255))
    utm_medium = Column(String(255))
    utm_campaign = Column(String(255))
    user_agent = Column(Text)
    ip_address = Column(String(64))


class PageViewTable(Base):
    __tablename__ = 'pageviews'
    __table_args__ = (
        Index('idx_pageviews_session', 'session_id'),
        Index('idx_pageviews_timestamp', 'timestamp'),
        Index('idx_pageviews_path', 'page_path'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), ForeignKey('sessions.session_id'), nullable=False)
    page_path = Column(Text, nullable=False)
    timestamp = Column(BigInteger, nullable=False)
    time_on_page_ms = Column(BigInteger, nullable=False, default=0)
    max_scroll_percentage = Column(Integer, nullable=False, default=0)
    entry_page = Column(Boolean, nullable=False, default=False)
    exit_page = Column(Boolean, nullable=False, default=False)
    viewport_width = Column(Integer)
    viewport_height = Column(Integer)
    ttfb = Column(Float)
    fcp = Column(Float)
    lcp = Column(Float)
    cls = Column(Float)
    fid = Column(Float)


class EventTable(Base):
    __tablename__ = 'events'
    __table_args__ = (
        Index('idx_events_session', 'session_id'),
        Index('idx_events_timestamp', 'timestamp'),
        Index('idx_events_type', 'event_type'),
        Index('idx_events_name', 'event_name'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), ForeignKey('sessions.session_id'), nullable=False)
    page_path = Column(Text, nullable=False)
    event_type = Column(String(32), nullable=False)
    event_name = Column(String(128), nullable=False)
    element = Column(Text)
    href = Column(Text)
    event_data = Column(JSON)
    timestamp = Column(BigInteger, nullable=False)
