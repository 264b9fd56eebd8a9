# ========================
# csv2arrow/__init__.py
# ========================

"""
csv2arrow

Converts delimited text files into typed, compressed Arrow IPC files.
"""

from .pipeline import DataPipeline, __version__
from .utils import Config

__all__ = ['DataPipeline', 'Config', '__version__']
