from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    google_maps_api_key: str = ""
    google_geocode_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    geocoder_timeout: float = 15.0
    cors_origins: str = "*"
    # One of: redis, upstash, memory, disabled
    cache_backend: str = "upstash"
    redis_url: str = ""
    upstash_redis_rest_url: str = ""
    upstash_redis_rest_token: str = ""
    cache_timeout: float = 2.0
    cache_ttl: int = 86400
    cache_perpetual: bool = True
    cache_coordinate_precision: int = 2
    cache_user_scoped: bool = False
    auth_enabled: bool = False
    api_keys: str = ""
    # Per caller: API key hash, or client IP when auth is off
    rate_limit_max_requests: int = 100
    rate_limit_window: int = 900
    log_format: str = "text"
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def cache_default_ttl(self) -> int:
        """TTL handed to the response cache; 0 stores entries without expiration."""
        return 0 if self.cache_perpetual else self.cache_ttl


settings = Settings()
