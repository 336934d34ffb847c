from __future__ import annotations
import os.path as _osp
import sys

from fitscodec.fits import (
    FitsFile, HDU, build, decode, encode, parse_table, read, write
)
from fitscodec.header import (
    Header, add_key, delete_key, edit_key, rename_key
)

__version__ = "0.1.0"

pkg_dir = _osp.abspath(_osp.dirname(__file__))

# fitscodec.open() is an alias for fitscodec.read()
setattr(sys.modules[__name__], 'open', read)
