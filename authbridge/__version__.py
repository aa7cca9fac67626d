__version__ = "0.1.0"
__build_time__ = "unknown"
