"""Bridge configuration loaded from environment variables.

Covers the portal origin, the protocol identity strings, timeouts per call
class, retry budgets and the two layout assumptions that have drifted between
portal releases (data grid position, exclusive all-day end dates).
"""

import sys

from pydantic import Field
from pydantic_settings import BaseSettings

# Chrome 138 user agents keyed by sys.platform prefix
PLATFORM_USER_AGENTS = {
    "darwin": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36"
    ),
    "win32": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36"
    ),
    "linux": (
        "Mozilla/5.0 (X11; CrOS x86_64 14541.0.0) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36"
    ),
}


def default_user_agent(platform: str | None = None) -> str:
    """Pick a browser user agent matching the host platform.

    Args:
        platform: Platform string to match (defaults to sys.platform).

    Returns:
        User agent string, falling back to the Linux/ChromeOS one.
    """
    platform = platform or sys.platform
    for prefix, agent in PLATFORM_USER_AGENTS.items():
        if platform.startswith(prefix):
            return agent
    return PLATFORM_USER_AGENTS["linux"]


class BridgeConfig(BaseSettings):
    """Bridge configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Portal settings (Next.js app, no public API)
    nlobby_base_url: str = Field(
        default="https://nlobby.nnn.ed.jp",
        description="N Lobby portal origin",
    )
    user_agent: str | None = Field(
        default=None,
        description="Override for the platform default browser user agent",
    )

    # Protocol identity
    mcp_server_name: str = Field(
        default="nlobby-mcp",
        description="Server name announced over MCP",
    )
    mcp_server_version: str = Field(
        default="1.0.0",
        description="Server version announced over MCP",
    )

    # Timeouts (seconds)
    probe_timeout: float = Field(
        default=5.0,
        description="Timeout for liveness probes",
    )
    page_probe_timeout: float = Field(
        default=8.0,
        description="Timeout for the news page health probe",
    )
    page_timeout: float = Field(
        default=10.0,
        description="Timeout for rendered page fetches",
    )
    procedure_timeout: float = Field(
        default=15.0,
        description="Timeout for remote procedure calls",
    )
    login_timeout: float = Field(
        default=300.0,
        description="Overall budget for the interactive browser login",
    )

    # Retry budgets
    discovery_attempts: int = Field(
        default=2,
        description="Attempts per endpoint-discovery candidate on network errors",
    )
    discovery_backoff: float = Field(
        default=1.0,
        description="Fixed delay between endpoint-discovery attempts",
    )
    login_attempts: int = Field(
        default=3,
        description="Attempts for the browser login flow",
    )
    login_backoff: float = Field(
        default=2.0,
        description="Fixed delay between browser login attempts",
    )
    browser_headless: bool = Field(
        default=False,
        description="Run the login browser headless (login is interactive by default)",
    )

    # Layout assumptions observed on the current portal release
    data_grid_container_index: int = Field(
        default=1,
        description='Index of the role="presentation" element holding the news grid',
    )
    all_day_end_exclusive: bool = Field(
        default=True,
        description="Treat all-day calendar end dates as exclusive",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_quiet: bool = Field(
        default=False,
        description="Only emit warnings and errors",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def base_url(self) -> str:
        return self.nlobby_base_url.rstrip("/")

    @property
    def effective_user_agent(self) -> str:
        return self.user_agent or default_user_agent()


# Singleton pattern
_config: BridgeConfig | None = None


def get_config() -> BridgeConfig:
    """Get the bridge configuration singleton.

    Returns:
        BridgeConfig: Bridge configuration instance
    """
    global _config
    if _config is None:
        _config = BridgeConfig()
    return _config
