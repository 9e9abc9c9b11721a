from __future__ import annotations

import pydantic as p

from .base import BaseSettings


class VendorSettings(BaseSettings):
    sits: SITSSettings


class SITSSettings(BaseSettings):
    """Student-records API endpoint settings."""

    base_url: p.HttpUrl
    timeout: float = 30.0
    limit: int = 2000
    # seconds a component roster stays cached before it is re-fetched
    cache_ttl: int = 30 * 86400
