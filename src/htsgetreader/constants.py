"""Shared constants for htsget requests, tickets and runtime defaults.

This module is the single source of truth for protocol names and default
values consumed across configuration loading, the client and the CLI.
"""

from __future__ import annotations

# Ticket document
TICKET_ROOT_KEY = "htsget"
TICKET_BLOCK_KEYS = ("urls", "blocks")
DATA_URI_SCHEME = "data"

# Query parameter names
PARAM_FORMAT = "format"
PARAM_CLASS = "class"
PARAM_REFERENCE_NAME = "referenceName"
PARAM_START = "start"
PARAM_END = "end"
PARAM_FIELD = "field"
PARAM_TAG = "tag"
PARAM_NOTAG = "notag"

# Reference name selecting unplaced unmapped reads
UNMAPPED_REFERENCE_NAME = "*"

# Networking defaults
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_USER_AGENT = "htsgetreader/0.1.0"
DEFAULT_CHARSET = "utf-8"
DEFAULT_MAX_CONNECTIONS = 10
STREAM_CHUNK_SIZE = 64 * 1024

# Fetched blocks larger than this spill from memory to a temporary file
SPOOL_MAX_MEMORY = 16 * 1024 * 1024

# Worker pool defaults (the pool itself is owned by the caller)
DEFAULT_READER_THREADS = 1
READER_THREAD_NAME_PREFIX = "htsgetReader-thread"

# Logging
DEFAULT_LOG_LEVEL = "INFO"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Reads data source
TEMP_FILE_PREFIX = "htsget-temp"
DEFAULT_READS_SUFFIX = ".bam"
