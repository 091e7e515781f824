"""
Error taxonomy for field mapping analysis.

Exceptions are raised by the leaf components (HTTP sender, capture loader,
analyzer internals) and converted into an ErrorKind at the orchestrator
boundary, so start_analysis() never raises to its caller.
"""

from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    PARSE = "parse"
    NETWORK = "network"
    EMPTY_LIST = "empty_list"
    NO_MAPPING = "no_mapping"
    UNEXPECTED = "unexpected"


class FieldMappingError(Exception):
    """Base class for all field mapping analysis errors."""

    kind = ErrorKind.UNEXPECTED


class ConfigurationError(FieldMappingError):
    """A required list/detail endpoint or setting is missing."""

    kind = ErrorKind.CONFIGURATION


class ParseError(FieldMappingError):
    """A request body or capture file could not be decoded."""

    kind = ErrorKind.PARSE


class NetworkError(FieldMappingError):
    """Transport failure, non-success status, or undecodable response."""

    kind = ErrorKind.NETWORK

    def __init__(self, message: str, status_code: int = None, url: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class EmptyListError(FieldMappingError):
    """The list response yielded no items at the configured list path."""

    kind = ErrorKind.EMPTY_LIST


class NoMappingError(FieldMappingError):
    """No detail-request key could be located in the sample list item."""

    kind = ErrorKind.NO_MAPPING
