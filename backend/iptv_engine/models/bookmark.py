from sqlalchemy import Column, Integer, String, Text, JSON
from iptv_engine.db.base_class import Base

class Bookmark(Base):
    __tablename__ = "bookmarks"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, nullable=False, index=True)
    category_title = Column(String, nullable=True)
    channel_id = Column(String, nullable=True)
    channel_name = Column(String, nullable=True)
    cmd = Column(Text, nullable=True)
    mode = Column(String, nullable=False, default="itv")
    server_portal_url = Column(String, nullable=True)

    drm_type = Column(String, nullable=True)
    drm_license_url = Column(String, nullable=True)
    clear_keys = Column(JSON, nullable=True)
    inputstream_addon = Column(String, nullable=True)
    manifest_type = Column(String, nullable=True)
