"""Fetch utilities - pacing and retries."""

from .throttling import RequestPacer, DEFAULT_GAPS, LIST, DETAIL, LOOKUP, REFRESH
from .retries import build_retrying, wait_for_error, DEFAULT_MAX_ATTEMPTS

__all__ = [
    "RequestPacer",
    "DEFAULT_GAPS",
    "LIST",
    "DETAIL",
    "LOOKUP",
    "REFRESH",
    "build_retrying",
    "wait_for_error",
    "DEFAULT_MAX_ATTEMPTS",
]
