"""
Core configuration, exceptions and logging.
"""
