"""
Configuration for the Sidrat progress engine.

All settings come from environment variables so the same code runs
against LocalStack in tests and against AWS in production.
"""

import logging
import os

# DynamoDB table holding one item per child plus the lesson catalog
TABLE_NAME = os.environ.get("SIDRAT_TABLE_NAME", "SidratProgress")

# Optional endpoint override (e.g. LocalStack)
DYNAMODB_ENDPOINT = os.environ.get("SIDRAT_DYNAMODB_ENDPOINT") or None

AWS_REGION = os.environ.get("SIDRAT_AWS_REGION", "us-east-1")

LOG_LEVEL = os.environ.get("SIDRAT_LOG_LEVEL", "INFO")


def configure_logging(level: str | None = None) -> None:
    """Set the log level for all sidrat loggers."""
    logger = logging.getLogger("sidrat")
    logger.setLevel((level or LOG_LEVEL).upper())
