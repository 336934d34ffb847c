"""generic BSCALE/BZERO (TSCALn/TZEROn) handling."""
from functools import wraps
from itertools import product
from numbers import Integral, Real
from typing import Optional, Union

import numpy as np

from fitscodec.np_utils import casting_to_float


def fit_to_scale(
    arr: np.ndarray,
    scale: Union[Integral, Real],
    offset: Union[Integral, Real]
) -> np.ndarray:
    """
    Cast `arr` to the narrowest dtype that holds every physical value
    `arr * scale + offset`, along with the operands themselves. Integer
    results stay integer (unsigned preferred); anything else becomes
    float32 or float64.
    """
    if arr.dtype.kind not in "uif":
        raise TypeError(f"can't scale {arr.dtype.name} arrays")
    if arr.dtype.kind == "f" or int(scale + offset) != scale + offset:
        bases, widths, infofunc, cast = ("f",), (4, 8), np.finfo, float
    else:
        bases, widths, infofunc, cast = ("u", "i"), (1, 2, 4, 8), np.iinfo, int
    values = arr
    if arr.dtype.kind == "f":
        # never narrower than the stored floats; NaN blanks don't count
        widths = tuple(w for w in widths if w >= arr.dtype.itemsize)
        values = arr[np.isfinite(arr)]
    if values.size == 0:
        return arr
    amin, amax = cast(values.min()), cast(values.max())
    bounds = (amin * scale + offset, amax * scale + offset, scale, offset)
    smin, smax = min(bounds), max(bounds)
    for base, width in product(bases, widths):
        candidate = np.dtype(f"{base}{width}")
        cinfo = infofunc(candidate)
        if smin >= cinfo.min and smax <= cinfo.max:
            return arr.astype(candidate)
    raise TypeError(
        f"no dtype holds the range {smin}..{smax} of the scaled values"
    )


def overflow_wrap(array_func):
    """retry `array_func` on a widened copy of its input if it overflows"""
    @wraps(array_func)
    def with_upcasting(arr, scale, offset):
        with np.errstate(over="raise"):
            try:
                return array_func(arr, scale, offset)
            except FloatingPointError:
                arr = fit_to_scale(arr, scale, offset)
                return array_func(arr, scale, offset)

    return with_upcasting


@overflow_wrap
def _physical(stored, scale, offset):
    return stored * scale + offset


def scale_array(
    obj: np.ndarray,
    scale: Union[Integral, Real] = 1,
    offset: Union[Integral, Real] = 0,
    float_dtype: Optional["np.dtype"] = None,
) -> np.ndarray:
    """
    Apply physical = stored * scale + offset. Integral scalings keep an
    integer dtype wide enough for the result; the rest produce floats
    (`float_dtype`, if given, else numpy's promotion).
    """
    if isinstance(scale, float) and scale.is_integer():
        scale = int(scale)
    if isinstance(offset, float) and offset.is_integer():
        offset = int(offset)
    # meaningfully better for enormous unscaled arrays
    if (scale == 1) and (offset == 0):
        return obj
    if not casting_to_float(obj, scale, offset):
        obj = fit_to_scale(obj, scale, offset)
    elif float_dtype is not None:
        obj = obj.astype(float_dtype)
    return _physical(obj, scale, offset)
