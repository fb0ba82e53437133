"""
Blog harvester: feed-driven post retrieval with live progress streaming.
"""

__version__ = "1.0.0"
