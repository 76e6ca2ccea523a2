"""
Configuration Module

Centralized, type-safe configuration management for taskguard.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Key prefixes, header names, enums and defaults
- **durations.py**: Parser for lifetimes such as "7d" or "12h"

Usage:
------
```python
from taskguard.core.config import get_settings
from taskguard.core.config.constants import CircuitState

settings = get_settings()
window_ms = settings.rate_limit.window_ms
state = CircuitState.CLOSED  # "closed"
```

Environment Variables:
---------------------
```bash
REDIS_HOST=localhost
REDIS_PORT=6379

RATE_LIMIT_MAX=100
RATE_LIMIT_TTL=60

CIRCUIT_BREAKER_ERROR_THRESHOLD=50
CIRCUIT_BREAKER_RESET_TIMEOUT=30000

JWT_REFRESH_EXPIRATION=7d

LOG_LEVEL=INFO
LOG_FORMAT=json
```
"""

from taskguard.core.config.durations import parse_duration
from taskguard.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    "Settings",
    "get_settings",
    "parse_duration",
    "reload_settings",
]
