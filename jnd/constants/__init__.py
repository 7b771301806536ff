"""
Physical constants for lateral ocean tracer mixing
"""

from jnd.constants.physical_constants import *

__all__ = [
    'physical_constants',
]
