from sqlalchemy import Column, Integer, String, BigInteger, Text, JSON
from iptv_engine.db.base_class import Base

class ChannelColumns:
    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, nullable=False, index=True)
    scope_id = Column(String, nullable=False, default="", index=True)  # Category cache scope
    channel_id = Column(String, nullable=True)
    name = Column(String, nullable=True)
    number = Column(String, nullable=True)
    cmd = Column(Text, nullable=True)
    cmd_1 = Column(Text, nullable=True)
    cmd_2 = Column(Text, nullable=True)
    cmd_3 = Column(Text, nullable=True)
    logo = Column(String, nullable=True)
    censored = Column(Integer, default=0)
    status = Column(Integer, default=0)
    hd = Column(Integer, default=0)
    category_id = Column(String, nullable=True)  # Provider genre id (tv_genre_id / category_id)

    # DRM descriptor (M3U KODIPROP / EXT-X-KEY)
    drm_type = Column(String, nullable=True)
    drm_license_url = Column(String, nullable=True)
    clear_keys = Column(JSON, nullable=True)
    inputstream_addon = Column(String, nullable=True)
    manifest_type = Column(String, nullable=True)

    # Series metadata
    season = Column(String, nullable=True)
    episode_num = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    release_date = Column(String, nullable=True)
    rating = Column(String, nullable=True)
    duration = Column(String, nullable=True)

    extra_json = Column(Text, nullable=True)
    cached_at = Column(BigInteger, nullable=False, default=0)  # epoch millis

class Channel(ChannelColumns, Base):
    """Live (itv) channels."""
    __tablename__ = "channels"

class VodChannel(ChannelColumns, Base):
    __tablename__ = "vod_channels"

class SeriesChannel(ChannelColumns, Base):
    __tablename__ = "series_channels"

class SeriesEpisode(ChannelColumns, Base):
    __tablename__ = "series_episodes"

    series_id = Column(String, nullable=False, default="", index=True)
