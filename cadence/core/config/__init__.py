"""
Configuration subsystem for Cadence.

- **config.py**: Static configuration from environment variables
- **progression.py**: Threshold table and marker map loaded from YAML
- **errors.py**: Configuration exception hierarchy

``progression`` is not re-exported here because it depends on the logging
subsystem, which itself reads ``Config``; import it from its module.

Usage
-----
```python
from cadence.core.config import Config
from cadence.core.config.progression import load_progression_settings

settings = load_progression_settings(Config.PROGRESSION_CONFIG_PATH)
```
"""

from cadence.core.config.config import Config, Environment
from cadence.core.config.errors import (
    ConfigError,
    ConfigInitializationError,
    ConfigValidationError,
)

__all__ = [
    "Config",
    "Environment",
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]
