"""
Core Infrastructure for speechcache.

    - config.py: Configuration loading and validation
    - logging/: Structured logging with numeric levels
"""
