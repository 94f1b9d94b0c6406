"""
zap-spine CLI.

Entry point::

    zapspine analytics report <pubkey> --primary dump.jsonl --range 30d
    zapspine delivery run --database posts.db
"""
