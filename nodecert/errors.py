#! /usr/bin/env python
# vim: expandtab shiftwidth=4 softtabstop=4 tabstop=17 filetype=python :
"""Errors raised while issuing a certificate.

Every failure in the issuing pipeline is an IssueError carrying an ErrorKind,
so a front end can report the kind without matching on classes."""

import enum


class ErrorKind(enum.Enum):
    INVALID_SPEC = "InvalidSpec"
    KEY_GENERATION = "KeyGenerationFailure"
    REQUEST_CONSTRUCTION = "RequestConstructionFailure"
    CA_UNAVAILABLE = "CAUnavailable"
    CA_KEY_MISMATCH = "CAKeyMismatch"
    SIGNING = "SigningFailure"
    PERSISTENCE = "PersistenceFailure"


class IssueError(Exception):
    kind = None
    retryable = False

    def __str__(self):
        message = super(IssueError, self).__str__()
        return "{}: {}".format(self.kind.value, message)


class InvalidSpec(IssueError, ValueError):
    kind = ErrorKind.INVALID_SPEC


class KeyGenerationFailure(IssueError):
    kind = ErrorKind.KEY_GENERATION


class RequestConstructionFailure(IssueError):
    kind = ErrorKind.REQUEST_CONSTRUCTION


class CAUnavailable(IssueError):
    kind = ErrorKind.CA_UNAVAILABLE


class CAKeyMismatch(IssueError):
    kind = ErrorKind.CA_KEY_MISMATCH


class SigningFailure(IssueError):
    kind = ErrorKind.SIGNING


class PersistenceFailure(IssueError):
    kind = ErrorKind.PERSISTENCE
    # disk trouble may well go away on its own
    retryable = True
