"""
Core package for configuration, logging and the shared error taxonomy.
"""
