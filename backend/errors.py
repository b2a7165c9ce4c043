"""Parse-time error taxonomy.

Resolvers raise these internally; the public ``parse_*`` functions in
command_parser catch them and hand them back as values.
"""
from enum import Enum
from typing import Optional


class ParseErrorCode(str, Enum):
    EMPTY_TITLE = "empty_title"
    TITLE_TOO_LONG = "title_too_long"
    MISSING_DATE = "missing_date"
    INVALID_DATE = "invalid_date"
    MISSING_TIME = "missing_time"
    INVALID_TIME = "invalid_time"
    # Non-fatal: unmatched trailing tokens mean "no recurrence"
    UNRECOGNIZED_RECURRENCE = "unrecognized_recurrence"
    PAST_SCHEDULE = "past_schedule"
    INVALID_IDENTIFIER = "invalid_identifier"
    MESSAGE_TOO_LONG = "message_too_long"


class ParseError(Exception):
    code: ParseErrorCode

    def __init__(self, message: str, token: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.token = token

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class EmptyTitle(ParseError):
    code = ParseErrorCode.EMPTY_TITLE


class TitleTooLong(ParseError):
    code = ParseErrorCode.TITLE_TOO_LONG


class MissingDate(ParseError):
    code = ParseErrorCode.MISSING_DATE


class InvalidDate(ParseError):
    code = ParseErrorCode.INVALID_DATE


class MissingTime(ParseError):
    code = ParseErrorCode.MISSING_TIME


class InvalidTime(ParseError):
    code = ParseErrorCode.INVALID_TIME


class PastSchedule(ParseError):
    code = ParseErrorCode.PAST_SCHEDULE


class InvalidIdentifier(ParseError):
    code = ParseErrorCode.INVALID_IDENTIFIER


class MessageTooLong(ParseError):
    code = ParseErrorCode.MESSAGE_TOO_LONG
