from pydantic import BaseModel
from typing import Optional, Dict
from iptv_engine.models.account import AccountType, AccountMode

# ============================================================================
# Accounts
# ============================================================================

class AccountBase(BaseModel):
    name: str
    type: AccountType = AccountType.STALKER_PORTAL
    username: Optional[str] = None
    password: Optional[str] = None
    url: Optional[str] = None
    m3u8_path: Optional[str] = None
    epg: Optional[str] = None
    mac_address: Optional[str] = None
    serial_number: Optional[str] = None
    device_id_1: Optional[str] = None
    device_id_2: Optional[str] = None
    signature: Optional[str] = None
    server_portal_url: Optional[str] = None
    mode: AccountMode = AccountMode.ITV
    pause_caching: bool = False

class AccountCreate(AccountBase):
    pass

class Account(AccountBase):
    id: int

    class Config:
        from_attributes = True

# ============================================================================
# Catalog
# ============================================================================

class Category(BaseModel):
    id: Optional[int] = None
    category_id: Optional[str] = None
    title: Optional[str] = None
    alias: Optional[str] = None
    url: Optional[str] = None
    active_sub: bool = True
    censored: int = 0
    extra_json: Optional[str] = None

    class Config:
        from_attributes = True

class Channel(BaseModel):
    """A live channel, VOD item, series row or series episode."""
    id: Optional[int] = None
    channel_id: Optional[str] = None
    name: Optional[str] = None
    number: Optional[str] = None
    cmd: Optional[str] = None
    cmd_1: Optional[str] = None
    cmd_2: Optional[str] = None
    cmd_3: Optional[str] = None
    logo: Optional[str] = None
    censored: int = 0
    status: int = 0
    hd: int = 0
    category_id: Optional[str] = None
    drm_type: Optional[str] = None
    drm_license_url: Optional[str] = None
    clear_keys: Optional[Dict[str, str]] = None
    inputstream_addon: Optional[str] = None
    manifest_type: Optional[str] = None
    season: Optional[str] = None
    episode_num: Optional[str] = None
    description: Optional[str] = None
    release_date: Optional[str] = None
    rating: Optional[str] = None
    duration: Optional[str] = None
    extra_json: Optional[str] = None
    watched: bool = False

    class Config:
        from_attributes = True

# ============================================================================
# Playback / watch state
# ============================================================================

class PlayerResponse(BaseModel):
    url: Optional[str] = None
    drm_type: Optional[str] = None
    drm_license_url: Optional[str] = None
    clear_keys: Optional[Dict[str, str]] = None
    inputstream_addon: Optional[str] = None
    manifest_type: Optional[str] = None

class SeriesWatchState(BaseModel):
    id: Optional[int] = None
    account_id: int
    mode: str = "series"
    category_id: str = ""
    series_id: str
    episode_id: str
    episode_name: Optional[str] = None
    season: Optional[str] = None
    episode_num: int = 0
    updated_at: int = 0
    source: str = "AUTO"

    class Config:
        from_attributes = True

class BookmarkBase(BaseModel):
    account_id: int
    category_title: Optional[str] = None
    channel_id: Optional[str] = None
    channel_name: Optional[str] = None
    cmd: Optional[str] = None
    mode: AccountMode = AccountMode.ITV
    server_portal_url: Optional[str] = None
    drm_type: Optional[str] = None
    drm_license_url: Optional[str] = None
    clear_keys: Optional[Dict[str, str]] = None
    inputstream_addon: Optional[str] = None
    manifest_type: Optional[str] = None

class BookmarkCreate(BookmarkBase):
    pass

class Bookmark(BookmarkBase):
    id: int

    class Config:
        from_attributes = True

class CacheReloadSummary(BaseModel):
    account_id: int
    status: str
    categories: int = 0
    channels: int = 0
    message: Optional[str] = None
