"""
Utils Module - Infrastructure Utilities
=======================================

Modules:
    logger: Structured JSON logging with rotation and request-context enrichment
    client_factory: httpx and AsyncOpenAI client construction
    db_utils: asyncpg pool creation, health checks and graceful shutdown

Logging (logger.py):
    - Console handler: Human-readable colored format to stderr
    - Conversation handler: JSON Lines to logs/conversations.jsonl
    - Error handler: JSON Lines to logs/errors.jsonl

    Records are enriched with the request id and thread id of the current
    request context. Message content is hidden unless content logging is
    enabled, and redacted when it is.
"""
