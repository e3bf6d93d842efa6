"""
Configuration subsystem for Monster Arena.

- **config.py**: static configuration from environment variables (.env support)
- **manager.py**: dynamic balance configuration loaded from YAML

Usage
-----
```python
from src.core.config import Config, ConfigManager

db_url = Config.DATABASE_URL
await ConfigManager.initialize()
max_turn_ms = ConfigManager.get("battle.max_turn_ms", 15000)
```
"""

from src.core.config.config import Config
from src.core.config.manager import (
    ConfigInitializationError,
    ConfigManager,
    ConfigManagerError,
)

__all__ = [
    "Config",
    "ConfigManager",
    "ConfigManagerError",
    "ConfigInitializationError",
]
