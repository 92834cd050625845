"""
Environment Configuration Utility

Provides environment detection and the allowed CORS origin set.

ENVIRONMENT values:
- production: Secure cookies, strict configuration
- development: Local defaults allowed
- test: Automated testing
"""
import os
import logging
from typing import List
from urllib.parse import urlsplit

# Valid environment values
VALID_ENVIRONMENTS = {"production", "development", "test"}

# Schemes a browser may send as an Origin for this service
ALLOWED_ORIGIN_SCHEMES = {"http", "https", "chrome-extension"}

# Get current environment (default to development for safety)
ENVIRONMENT = os.environ.get("ENVIRONMENT", "development").lower()

# Validate environment value
if ENVIRONMENT not in VALID_ENVIRONMENTS:
    logging.warning(f"Invalid ENVIRONMENT '{ENVIRONMENT}', defaulting to 'development'")
    ENVIRONMENT = "development"


def is_production() -> bool:
    """Check if running in production environment."""
    return ENVIRONMENT == "production"


def validate_origin(origin: str) -> str:
    """
    Normalize one configured origin and reject anything that is not a bare
    scheme://host[:port].

    Raises:
        ValueError: origin has a path, query, unsupported scheme or no host
    """
    value = origin.strip().rstrip("/")
    parts = urlsplit(value)

    if parts.scheme not in ALLOWED_ORIGIN_SCHEMES:
        raise ValueError(f"Invalid CORS origin '{origin}': unsupported scheme")
    if not parts.netloc:
        raise ValueError(f"Invalid CORS origin '{origin}': missing host")
    if parts.path or parts.query or parts.fragment:
        raise ValueError(f"Invalid CORS origin '{origin}': origins carry no path")

    return f"{parts.scheme}://{parts.netloc}"


def get_allowed_origins(raw: str = None) -> List[str]:
    """Parse CORS_ORIGINS (comma separated) into a validated origin list."""
    if raw is None:
        raw = os.environ.get("CORS_ORIGINS", "http://localhost:3000")

    origins = []
    for item in raw.split(","):
        if not item.strip():
            continue
        origin = validate_origin(item)
        if origin not in origins:
            origins.append(origin)
    return origins


# Log environment on module load
logging.info(f"Environment: {ENVIRONMENT}")
