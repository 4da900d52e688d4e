from sqlalchemy import Column, Integer, String, Boolean, BigInteger, Text
from iptv_engine.db.base_class import Base

class CategoryColumns:
    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, nullable=False, index=True)
    category_id = Column(String, nullable=True)  # Provider-native id (tvg-id for playlists)
    title = Column(String, nullable=True)
    alias = Column(String, nullable=True)
    url = Column(String, nullable=True)
    active_sub = Column(Boolean, default=True)
    censored = Column(Integer, default=0)
    extra_json = Column(Text, nullable=True)
    cached_at = Column(BigInteger, nullable=False, default=0)  # epoch millis

class Category(CategoryColumns, Base):
    """Live (itv) categories."""
    __tablename__ = "categories"

class VodCategory(CategoryColumns, Base):
    __tablename__ = "vod_categories"

class SeriesCategory(CategoryColumns, Base):
    __tablename__ = "series_categories"
