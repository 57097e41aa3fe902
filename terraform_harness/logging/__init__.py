"""Logging module for terraform-harness."""

from .logger import (
    Logger,
    LogLevel,
    ConsoleLogger,
    NullLogger,
    FileLogger,
    MultiLogger,
)

__all__ = [
    "Logger",
    "LogLevel",
    "ConsoleLogger",
    "NullLogger",
    "FileLogger",
    "MultiLogger",
]
