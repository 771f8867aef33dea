from __future__ import annotations


class RequestBotError(Exception):
    """Base error for problems that are reported back to the user as-is."""


class DuplicateRequestError(RequestBotError):
    pass


class QueueActionError(RequestBotError):
    pass
