"""
zap-spine framework layer: pluggable record sources.
"""
