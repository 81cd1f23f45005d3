"""
Error taxonomy for the LogiTycoon automation bot
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure categories surfaced in cycle reports"""
    NETWORK_ERROR = "network_error"
    PARSE_ERROR = "parse_error"
    ACTION_REJECTED = "action_rejected"
    MISSING_IDENTIFIER = "missing_identifier"
    CANCELLED = "cancelled"


class BotError(Exception):
    """Base class for all bot errors"""
    kind = None


class NetworkError(BotError):
    """Transport failure (DNS, timeout, refused connection)"""
    kind = ErrorKind.NETWORK_ERROR

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ParseError(BotError):
    """Malformed or unexpected HTML/JSON"""
    kind = ErrorKind.PARSE_ERROR


class ActionRejected(BotError):
    """Server-side rejection carrying the game's sentinel code"""
    kind = ErrorKind.ACTION_REJECTED

    def __init__(self, code: str, message: str = ""):
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message


class MissingIdentifier(BotError):
    """A scraped row or block had no usable id"""
    kind = ErrorKind.MISSING_IDENTIFIER
