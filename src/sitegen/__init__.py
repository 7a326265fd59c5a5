"""
SiteGen
=======

AI website generation service: provider routing with recovery, credit and
rate-limit admission, content safety validation and SSE streaming.
"""

from .factory import create_app

__version__ = '0.1.0'

__all__ = ['create_app']
