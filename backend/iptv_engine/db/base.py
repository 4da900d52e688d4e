# Import Base class
from iptv_engine.db.base_class import Base

# Import all models here so that Base has them registered
# This is needed for Base.metadata.create_all()
from iptv_engine.models.account import Account
from iptv_engine.models.settings import SettingsModel
from iptv_engine.models.category import Category, VodCategory, SeriesCategory
from iptv_engine.models.channel import Channel, VodChannel, SeriesChannel, SeriesEpisode
from iptv_engine.models.watch_state import SeriesWatchState
from iptv_engine.models.bookmark import Bookmark
