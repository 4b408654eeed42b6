import json
import os
import logging
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_PATH = os.getenv("CONFIG_PATH", "config.json")

class RedisConfig(BaseModel):
    enabled: bool = Field(default=True, description="Connect to Redis on startup")
    url: str = Field(default="redis://redis:6379", description="Redis connection URL")
    socket_timeout: int = Field(default=5, description="Redis socket timeout in seconds")
    info_cache_ttl: int = Field(default=300, ge=0, description="Metadata cache TTL in seconds")

class DownloadConfig(BaseModel):
    max_concurrent: int = Field(default=10, ge=1, le=100, description="Max concurrent downloads")
    timeout_seconds: int = Field(default=3600, ge=60, description="Max run time of a download or stream")
    extractor_timeout: float = Field(default=30.0, gt=0, description="Timeout for yt-dlp lookups")
    title_timeout: float = Field(default=15.0, gt=0, description="Timeout for the title lookup")
    max_stream_bytes: int = Field(default=4 * 1024 ** 3, ge=0, description="Max bytes per stream (0 = unlimited)")
    chunk_size: int = Field(default=64 * 1024, ge=1024, description="Stream read size in bytes")
    scratch_dir: str = Field(default="/tmp/tubestream", description="Scratch directory for file downloads")

class ToolsConfig(BaseModel):
    ytdlp_path: str = Field(default="yt-dlp", description="yt-dlp executable")
    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg executable")

class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="%(message)s", description="Log format")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @validator('level')
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

class I18nConfig(BaseModel):
    default_locale: str = Field(default="en", description="Default locale")
    supported_locales: list = Field(default=["en", "ar"], description="Supported locales")

class ApiConfig(BaseModel):
    title: str = Field(default="tubestream", description="API title")
    description: str = Field(default="Streaming video/audio converter", description="API description")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")
    debug: bool = Field(default=False, description="Development mode: expose error details")

class Config(BaseSettings):
    """Main configuration model"""
    model_config = SettingsConfigDict(env_prefix="TUBESTREAM_", env_nested_delimiter="__")

    redis: RedisConfig = Field(default_factory=RedisConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def load_from_file(cls, config_path: str = "config.json") -> "Config":
        """Load configuration from JSON file"""
        if os.path.exists(config_path):
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    config_data = json.load(f)
                logger.info(f"Configuration loaded from {config_path}")
                return cls(**config_data)
            except Exception as e:
                logger.error(f"Failed to load config from {config_path}: {str(e)}")
                logger.info("Using default configuration")
        else:
            logger.warning(f"Config file {config_path} not found, using defaults")

        return cls()

    @classmethod
    def load_from_env(cls) -> "Config":
        """
        Load configuration from environment variables.
        TUBESTREAM_<SECTION>__<FIELD> is read by pydantic-settings; the short
        names below are kept for container setups.
        """
        config_data: Dict[str, Any] = {}

        if os.getenv("REDIS_URL"):
            config_data["redis"] = {"url": os.getenv("REDIS_URL")}

        download = {}
        if os.getenv("MAX_CONCURRENT_DOWNLOADS"):
            download["max_concurrent"] = int(os.getenv("MAX_CONCURRENT_DOWNLOADS"))
        if os.getenv("DOWNLOAD_TIMEOUT"):
            download["timeout_seconds"] = int(os.getenv("DOWNLOAD_TIMEOUT"))
        if download:
            config_data["download"] = download

        if os.getenv("LOG_LEVEL"):
            config_data["logging"] = {"level": os.getenv("LOG_LEVEL")}

        if os.getenv("DEV_MODE"):
            config_data["api"] = {"debug": os.getenv("DEV_MODE").lower() in ("1", "true", "yes")}

        return cls(**config_data) if config_data else cls()

def load_config() -> Config:
    """Load configuration with priority: config.json > env vars > defaults"""
    if os.path.exists(CONFIG_PATH):
        return Config.load_from_file(CONFIG_PATH)
    logger.info(f"Config file not found at {CONFIG_PATH}, checking environment variables")
    return Config.load_from_env()

config = load_config()
