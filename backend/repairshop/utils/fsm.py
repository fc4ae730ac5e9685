from __future__ import annotations
"""Simple finite state machine utility for enforcing allowed status transitions.

Only the actions that carry a precondition use it; the general repair update
writes any valid status without consulting a graph.
Usage:
    from repairshop.utils.fsm import TransitionValidator
    CANCEL_FSM = TransitionValidator({
        'pending': {'cancelled'},
    }, message='Only pending repairs can be cancelled')
    CANCEL_FSM.assert_can_transition(current_status, 'cancelled')

Raises 400 abort if invalid.
"""
from typing import Dict, Optional, Set
from flask import abort

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status', message: Optional[str] = None):
        self.graph = graph
        self.field_name = field_name
        self.message = message

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            abort(400, description=self.message or f"Invalid {self.field_name} transition {current} -> {target}")
        return True

__all__ = ['TransitionValidator']
