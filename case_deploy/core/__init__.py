"""
Core package.

Error taxonomy and JSON helpers shared by every other package.
"""

from case_deploy.core import errors
from case_deploy.core.json_utils import dumps_pretty, loads

__all__ = [
    "errors",
    "dumps_pretty",
    "loads",
]
