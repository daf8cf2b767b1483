"""
zkfuzz: Differential Execution Harness

Runs the same program on a native backend and an isolated VM backend and
flags semantic divergences between them.
"""

import os

__version__ = "0.3.0"
__author__ = "zkfuzz Development Team"

# Directory that must be on PYTHONPATH for child interpreters to import zkfuzz.
PACKAGE_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
