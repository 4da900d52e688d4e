from sqlalchemy import Column, Integer, String, BigInteger, UniqueConstraint
from iptv_engine.db.base_class import Base

class SeriesWatchState(Base):
    __tablename__ = "series_watch_state"
    __table_args__ = (
        UniqueConstraint("account_id", "mode", "category_id", "series_id", name="uq_series_watch_state"),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, nullable=False, index=True)
    mode = Column(String, nullable=False, default="series")
    category_id = Column(String, nullable=False, default="")
    series_id = Column(String, nullable=False, index=True)
    episode_id = Column(String, nullable=False)
    episode_name = Column(String, nullable=True)
    season = Column(String, nullable=True)
    episode_num = Column(Integer, nullable=False, default=0)
    updated_at = Column(BigInteger, nullable=False, default=0)  # epoch millis
    source = Column(String, nullable=False, default="AUTO")  # AUTO (playback) or MANUAL
