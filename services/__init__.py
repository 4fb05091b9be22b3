"""
Sync configuration services.

- targets.py: repository targets and the built-in default list
- config_loader.py: JSON targets/difficulty config with TTL caching
"""
