"""
aigate: health-aware routing, failover and cost alerting for LLM providers.
"""

__version__ = "0.1.0"
