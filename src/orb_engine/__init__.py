"""ORB Engine.

Per-symbol Opening Range Breakout retest state machine, driven on a recurring
schedule against pluggable bar data sources and order gateways.
"""

__version__ = "0.1.0"
