"""
Invitation Token State Machine

Every state change is checked against TRANSITIONS at call time.
Resend is the only backward move and is modelled separately (can_resend).
"""

from typing import Dict, FrozenSet

from .entities.enums import TERMINAL_STATES, TokenState

_ABORT_STATES = frozenset({TokenState.FAILED, TokenState.EXPIRED, TokenState.REVOKED})

TRANSITIONS: Dict[TokenState, FrozenSet[TokenState]] = {
    TokenState.CREATED: frozenset(
        {TokenState.SENT, TokenState.DELIVERED, TokenState.OPENED, TokenState.VALIDATED}
    )
    | _ABORT_STATES,
    TokenState.SENT: frozenset(
        {TokenState.DELIVERED, TokenState.OPENED, TokenState.VALIDATED}
    )
    | _ABORT_STATES,
    TokenState.DELIVERED: frozenset({TokenState.OPENED, TokenState.VALIDATED})
    | _ABORT_STATES,
    TokenState.OPENED: frozenset({TokenState.VALIDATED}) | _ABORT_STATES,
    # re-validation within the attempt limit keeps the state
    TokenState.VALIDATED: frozenset({TokenState.VALIDATED, TokenState.CONSUMED})
    | _ABORT_STATES,
    TokenState.CONSUMED: frozenset(),
    TokenState.FAILED: frozenset(),
    TokenState.EXPIRED: frozenset(),
    TokenState.REVOKED: frozenset(),
}

RESEND_TARGET = TokenState.CREATED


class InvalidStateTransition(Exception):
    def __init__(self, current: TokenState, target: TokenState):
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid state transition: {current.value} -> {target.value}"
        )


def can_transition(current: TokenState, target: TokenState) -> bool:
    return target in TRANSITIONS[TokenState(current)]


def ensure_transition(current: TokenState, target: TokenState) -> None:
    if not can_transition(current, target):
        raise InvalidStateTransition(TokenState(current), TokenState(target))


def can_resend(current: TokenState) -> bool:
    return TokenState(current) != TokenState.CONSUMED


def is_terminal(state: TokenState) -> bool:
    return TokenState(state) in TERMINAL_STATES
