"""Error kinds raised by the position engine.

Any of these aborts the whole action; the host restores every effect of the action
before re-raising.
"""


class FieldError(Exception):
    """Base class for every engine failure."""


class Unauthorized(FieldError):
    pass


class BadArgument(FieldError, ValueError):
    pass


class MissingPrecondition(FieldError):
    pass


class ArithmeticFault(FieldError, ArithmeticError):
    pass


class ExternalFailure(FieldError):
    """A collaborator rejected a message, or its reply could not be parsed."""


class InvariantViolation(FieldError):
    pass


class UnhealthyPosition(InvariantViolation):
    def __init__(self, user: str, ltv: object, max_ltv: object):
        self.user = user
        self.ltv = ltv
        self.max_ltv = max_ltv
        super().__init__(f"ltv greater than threshold: {ltv} > {max_ltv} (user {user})")


__all__ = [
    "FieldError",
    "Unauthorized",
    "BadArgument",
    "MissingPrecondition",
    "ArithmeticFault",
    "ExternalFailure",
    "InvariantViolation",
    "UnhealthyPosition",
]
