from sqlalchemy import Column, Integer, String, Boolean, Enum as SQLEnum
from iptv_engine.db.base_class import Base
import enum

class AccountType(str, enum.Enum):
    STALKER_PORTAL = "STALKER_PORTAL"
    XTREME_API = "XTREME_API"
    M3U8_LOCAL = "M3U8_LOCAL"
    M3U8_URL = "M3U8_URL"
    RSS_FEED = "RSS_FEED"

class AccountMode(str, enum.Enum):
    ITV = "itv"
    VOD = "vod"
    SERIES = "series"

class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    type = Column(SQLEnum(AccountType), nullable=False, default=AccountType.STALKER_PORTAL)

    # Xtream / M3U credentials
    username = Column(String, nullable=True)
    password = Column(String, nullable=True)
    url = Column(String, nullable=True)
    m3u8_path = Column(String, nullable=True)  # playlist path/URL, or alternate Xtream base
    epg = Column(String, nullable=True)

    # Stalker device identity
    mac_address = Column(String, nullable=True)
    serial_number = Column(String, nullable=True)
    device_id_1 = Column(String, nullable=True)
    device_id_2 = Column(String, nullable=True)
    signature = Column(String, nullable=True)

    # Lazily discovered Stalker API endpoint (load.php / portal.php)
    server_portal_url = Column(String, nullable=True)

    mode = Column(SQLEnum(AccountMode), nullable=False, default=AccountMode.ITV)
    pause_caching = Column(Boolean, default=False, nullable=False)
