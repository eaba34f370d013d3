"""Error taxonomy for the check pipeline."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Why a run degraded instead of producing a full check."""

    CONFIG_MISSING = "config_missing"
    CONFIG_PARSE = "config_parse"
    NO_ENFORCEABLE_PATTERNS = "no_enforceable_patterns"
    NO_CHANGED_FILES = "no_changed_files"
    API_KEY_MISSING = "api_key_missing"
    API = "api"
    API_RESPONSE = "api_response"


class CheckError(Exception):
    """Base class for failures the run loop degrades into empty artifacts."""

    kind: ErrorKind = ErrorKind.API


class ConfigParseError(CheckError):
    """Raised when the pattern document is not valid JSON or has bad fields."""

    kind = ErrorKind.CONFIG_PARSE


class ApiKeyMissingError(CheckError):
    """Raised when no completion API key is configured."""

    kind = ErrorKind.API_KEY_MISSING


class ApiError(CheckError):
    """Raised on transport failures, timeouts and non-2xx responses."""

    kind = ErrorKind.API


class ApiResponseParseError(ApiError):
    """Raised when the completion response does not match the expected shape."""

    kind = ErrorKind.API_RESPONSE
