"""
API Routes Package
==================

- core: health and status
- generation: streamed site generation and credit balances
"""

from .core import core_bp
from .generation import gen_bp

__all__ = [
    'core_bp',
    'gen_bp',
]
