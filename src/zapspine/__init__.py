"""
zap-spine - progressive zap-receipt aggregation across many relays.

Packages:
- zapspine.core: errors, logging, settings, models, windows, caches
- zapspine.framework: record sources
- zapspine.execution: fan-out, batching, pagination
- zapspine.analytics: receipt parsing and aggregations
- zapspine.delivery: scheduled-post delivery worker
- zapspine.cli: command line interface
"""

__version__ = "0.1.0"
