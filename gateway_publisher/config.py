# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Configuration settings for the Gateway Publisher

All settings can be overridden via environment variables.
For Kubernetes deployments, set these in ConfigMaps/Secrets.
"""
from pydantic_settings import BaseSettings
from typing import Dict, List


class Settings(BaseSettings):
    # Application
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"  # dev, staging, production

    # Database (async driver; Alembic derives the sync URL)
    DATABASE_URL: str = "sqlite+aiosqlite:///./gateway_publisher.db"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    # Vendor gateway calls
    GATEWAY_HTTP_TIMEOUT_SECONDS: float = 30.0
    MCP_CLIENT_TIMEOUT_SECONDS: float = 15.0

    # Deployment worker pool
    ENABLE_DEPLOYMENT_WORKER: bool = True
    WORKER_CONCURRENCY: int = 4
    WORKER_QUEUE_SIZE: int = 1000

    # Config sync debounce ("recently synced" marker per product)
    PRODUCT_SYNC_TTL_SECONDS: int = 300
    SYNC_CACHE_MAX_SIZE: int = 10000

    # Stuck PUBLISHING/UNPUBLISHING records
    STALE_DEPLOYMENT_MINUTES: int = 30
    RECONCILE_INTERVAL_SECONDS: int = 300

    # CORS - comma-separated list of allowed origins
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json, text
    LOG_COMPONENTS: str = ""  # e.g. "gateway_publisher.adapters:DEBUG,httpx:WARNING"
    LOG_MASKING_ENABLED: bool = True
    LOG_MASKING_PATTERNS: str = "password,secret,access_key,api_key,apikey,auth_seed,authorization,token"

    @property
    def cors_origins_list(self) -> List[str]:
        """Return CORS origins as a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def log_components_dict(self) -> Dict[str, str]:
        """Parse LOG_COMPONENTS into {logger_name: level}"""
        result = {}
        for item in self.LOG_COMPONENTS.split(","):
            if ":" not in item:
                continue
            name, level = item.rsplit(":", 1)
            if name.strip():
                result[name.strip()] = level.strip().upper()
        return result

    @property
    def log_masking_patterns_list(self) -> List[str]:
        return [p.strip() for p in self.LOG_MASKING_PATTERNS.split(",") if p.strip()]

    class Config:
        env_file = ".env"


settings = Settings()
