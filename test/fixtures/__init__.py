"""
Test fixtures package.
Provides simulators for the remote services the workflow depends on.
"""
from .workflow_simulators import CallTrace, HomeServiceSimulator, ActionServerSimulator

__all__ = [
    'CallTrace',
    'HomeServiceSimulator',
    'ActionServerSimulator',
]
