# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Exception types raised by CashSight.

Every error raised on purpose by the package derives from CashSightError so
that callers (CLI, Web UI) can catch them in one place. ValidationError also
derives from ValueError, which keeps the usual ``except ValueError`` idiom
working for input problems.
"""


class CashSightError(Exception):
    """Base class for all CashSight errors."""


class ValidationError(CashSightError, ValueError):
    """
    Invalid input rejected before any computation or write.

    Examples: a custom period whose start is after its end, a non-positive
    total amount, an installment count lower than 1.
    """


class ExternalCollaboratorError(CashSightError, RuntimeError):
    """
    The AI evaluator could not produce a usable reply.

    Raised when the service is unreachable, answers with a non-2xx status or
    returns a reply that does not match the requested JSON shape. The engine
    never retries and never substitutes a default analysis.
    """


class PermissionDenied(CashSightError):
    """The current session lacks the capability required by an operation."""
