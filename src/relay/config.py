"""
Settings for the relay agent.

Read from an optional JSON config file, then from the environment
(after loading .env):

config.json:
{
    "daemon": {"host": "127.0.0.1", "port": 11898, "timeout": 10000},
    "queues": {"relayAgent": "request.network"}
}

The daemon timeout is in milliseconds, both in the file and in
RELAY_DAEMON_TIMEOUT. Settings.daemon_timeout holds seconds.
"""

import json
import os
from pathlib import Path
from typing import Optional

import dotenv
import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = Path("config.json")


class Settings(BaseModel):
    daemon_host: str = Field(default="127.0.0.1", description="Daemon RPC host")
    daemon_port: int = Field(default=11898, description="Daemon RPC port")
    daemon_timeout: float = Field(default=10.0, gt=0, description="Per-call timeout in seconds")
    daemon_retries: int = Field(default=1, ge=1, description="Attempts per daemon call")

    queue_name: str = Field(default="request.network", description="Work queue this agent consumes")
    prefetch_count: int = Field(default=1, ge=1, description="Unacked messages per worker")
    pool_size: int = Field(default=1, ge=1, description="Worker processes kept alive")

    rabbit_host: str = Field(default="localhost")
    rabbit_username: str = Field(default="")
    rabbit_password: str = Field(default="")

    environment: str = Field(default="development")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def _from_file(path: Path) -> dict:
    """Flatten the config file layout into Settings fields."""
    with open(path) as f:
        data = json.load(f)

    values = {}
    daemon = data.get("daemon", {})
    if "host" in daemon:
        values["daemon_host"] = daemon["host"]
    if "port" in daemon:
        values["daemon_port"] = daemon["port"]
    if "timeout" in daemon:
        values["daemon_timeout"] = daemon["timeout"] / 1000

    queues = data.get("queues", {})
    if "relayAgent" in queues:
        values["queue_name"] = queues["relayAgent"]

    return values


ENV_FIELDS = {
    "RELAY_DAEMON_HOST": "daemon_host",
    "RELAY_DAEMON_PORT": "daemon_port",
    "RELAY_DAEMON_TIMEOUT": "daemon_timeout",
    "RELAY_DAEMON_RETRIES": "daemon_retries",
    "RELAY_QUEUE": "queue_name",
    "RELAY_PREFETCH": "prefetch_count",
    "RELAY_WORKERS": "pool_size",
    "RABBIT_PUBLIC_SERVER": "rabbit_host",
    "RABBIT_PUBLIC_USERNAME": "rabbit_username",
    "RABBIT_PUBLIC_PASSWORD": "rabbit_password",
    "RELAY_ENV": "environment",
}


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[dict] = None,
    load_env_file: bool = True,
) -> Settings:
    """Build Settings from the config file and environment."""
    if load_env_file:
        dotenv.load_dotenv()

    env = os.environ if environ is None else environ
    config_path = config_path or Path(env.get("RELAY_CONFIG", DEFAULT_CONFIG_PATH))

    values = {}
    if config_path.exists():
        values.update(_from_file(config_path))
        logger.debug("Loaded config file", path=str(config_path))

    for var, field in ENV_FIELDS.items():
        # Unset or empty falls back to the default
        if env.get(var):
            values[field] = env[var]

    if env.get("RELAY_DAEMON_TIMEOUT"):
        values["daemon_timeout"] = float(env["RELAY_DAEMON_TIMEOUT"]) / 1000

    return Settings(**values)
