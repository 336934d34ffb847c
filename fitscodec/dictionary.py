"""
human-readable descriptions of reserved FITS keywords. used for error
messages and default card comments, never for parsing decisions.
"""
from types import MappingProxyType
from typing import Optional

KEYWORD_DESCRIPTIONS = MappingProxyType(
    {
        "SIMPLE": "file conforms to the FITS standard",
        "XTENSION": "type of extension",
        "BITPIX": "number of bits per data pixel",
        "NAXIS": "number of data axes",
        "NAXISn": "length of data axis n",
        "EXTEND": "FITS dataset may contain extensions",
        "PCOUNT": "number of bytes following the main data table",
        "GCOUNT": "number of groups",
        "BZERO": "offset data range to that of unsigned integer",
        "BSCALE": "default scaling factor",
        "BUNIT": "physical unit of the array values",
        "BLANK": "value used for undefined array elements",
        "DATAMIN": "minimum data value",
        "DATAMAX": "maximum data value",
        "TFIELDS": "number of fields in each row",
        "TTYPEn": "name of field n",
        "TBCOLn": "starting column of field n",
        "TFORMn": "data format of field n",
        "TDISPn": "display format of field n",
        "TZEROn": "offset for field n",
        "TSCALn": "scaling factor for field n",
        "TDIMn": "dimensions of field n",
        "TUNITn": "physical unit of field n",
        "TNULLn": "undefined value of field n",
        "COLSEP": "number of blanks between table columns",
        "EXTNAME": "name of the extension",
        "EXTVER": "version of the extension",
        "DATE": "date the HDU was created",
        "DATE-OBS": "date of the observation",
        "ORIGIN": "organization responsible for the data",
        "TELESCOP": "telescope used to acquire the data",
        "INSTRUME": "instrument used to acquire the data",
        "OBSERVER": "observer who acquired the data",
        "OBJECT": "name of the observed object",
        "AUTHOR": "author of the data",
        "REFERENC": "bibliographic reference",
        "EQUINOX": "equinox of celestial coordinate system",
        "COMMENT": "descriptive comment",
        "HISTORY": "processing history of the data",
        "CONTINUE": "continuation of the previous keyword",
        "END": "end of the header",
    }
)
"""reserved keyword (indexed ones with a trailing 'n') -> description"""


def indexed_root(keyword: str) -> str:
    """'NAXIS3' -> 'NAXISn', 'TFORM12' -> 'TFORMn', 'BITPIX' -> 'BITPIX'"""
    keyword = keyword.strip().upper()
    root = keyword.rstrip("0123456789")
    if root == keyword or root == "":
        return keyword
    return f"{root}n"


def describe_keyword(keyword: str) -> Optional[str]:
    """description of a reserved keyword, or None if it isn't one."""
    keyword = keyword.strip().upper()
    if keyword in KEYWORD_DESCRIPTIONS:
        return KEYWORD_DESCRIPTIONS[keyword]
    root = indexed_root(keyword)
    if root not in KEYWORD_DESCRIPTIONS:
        return None
    return KEYWORD_DESCRIPTIONS[root].replace(
        " n", f" {keyword[len(root) - 1:]}"
    )
