"""
Utility Modules for speechcache.

    - timeit.py: Performance measurement utilities
"""
