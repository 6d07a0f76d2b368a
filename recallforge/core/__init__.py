"""
Core Infrastructure for RecallForge.

Architecture Position
---------------------
    API / CLI (outermost)
      └── Study (card, engine, batch, service, stats)
            └── **Core** (innermost - you are here)

The Core layer has NO dependencies on other RecallForge modules.

Components
----------
**Configuration (config/, config_loaders.py)**
    Frozen scheduler parameters, service settings, YAML loading with
    environment variable expansion and overrides.

**Logging (logging.py)**
    Structured logging with context binding and a per-review logger.

**Exceptions (exceptions.py)**
    Error hierarchy with error codes and fix suggestions.

**Environment (env.py)**
    Bounds-checked environment variable getters.
"""
