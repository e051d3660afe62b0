"""
SQLAlchemy ORM Models for EPG Server

The ``epg_data`` table is populated by the external update job; this service
only reads it.
"""
from sqlalchemy import String, Text, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class EpgData(Base):
    """One channel's schedule for one day, stored as a diyp JSON document"""
    __tablename__ = "epg_data"

    date: Mapped[str] = mapped_column(String(10), primary_key=True)
    channel: Mapped[str] = mapped_column(String(255), primary_key=True)
    epg_diyp: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("idx_epg_data_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<EpgData(channel={self.channel}, date={self.date})>"
