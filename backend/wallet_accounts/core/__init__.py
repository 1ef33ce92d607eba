# Core module
from wallet_accounts.core.config import get_settings, Settings
from wallet_accounts.core.redis import RedisStore, get_redis, close_redis
from wallet_accounts.core.file_store import JsonFileStore

__all__ = ["get_settings", "Settings", "RedisStore", "get_redis", "close_redis", "JsonFileStore"]
