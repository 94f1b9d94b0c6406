"""
Record source package.

Provides the source protocol, URL helpers and a file-backed source.
"""

from zapspine.framework.sources.file import FileFormat, FileRecordSource
from zapspine.framework.sources.protocol import (
    RecordSource,
    SourceConnector,
    SourceDescriptor,
    SourceRegistry,
    normalize_source_url,
    read_source_urls,
    write_source_urls,
)

__all__ = [
    # Protocols
    "RecordSource",
    "SourceConnector",
    # Metadata
    "SourceDescriptor",
    "read_source_urls",
    "write_source_urls",
    "normalize_source_url",
    # Registry
    "SourceRegistry",
    # Implementations
    "FileFormat",
    "FileRecordSource",
]
