"""N Lobby portal bridge for MCP clients.

Reads news, calendar and required-course data from the N Lobby school portal
using a browser-captured session, and serves it over MCP stdio.
"""

from src.nlobby.api import PortalClient
from src.nlobby.config import BridgeConfig, get_config
from src.nlobby.models import NewsDetail, NewsItem, RequiredCourse, ScheduleItem

__all__ = [
    "PortalClient",
    "BridgeConfig",
    "get_config",
    "NewsItem",
    "NewsDetail",
    "RequiredCourse",
    "ScheduleItem",
]
