"""
Generation backends.

Every backend implements GenerationBackend, so backends can be swapped
without changing orchestration code.

Example:
    from generation.backends import BackendFactory

    backend = BackendFactory.create("mock", seed=7)
    response = await backend.generate(request, context)
"""

from generation.backends.base import GenerationBackend, check_request, is_terminal_error
from generation.backends.mock import MockBackend
from generation.backends.openai import OpenAIBackend
from generation.backends.factory import BackendFactory

__all__ = [
    "GenerationBackend",
    "check_request",
    "is_terminal_error",
    "MockBackend",
    "OpenAIBackend",
    "BackendFactory",
]
