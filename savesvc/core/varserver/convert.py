from __future__ import annotations

from typing import Any

from savesvc.core.errors import ConversionError
from savesvc.core.varserver.models import VarType

# Size of the original value buffer (BUFSIZ).
DEFAULT_MAX_VALUE_LEN = 8192


def value_to_string(vtype: VarType, value: Any, *, name: str = "", max_len: int = DEFAULT_MAX_VALUE_LEN) -> str:
    """
    Render a typed value in its canonical loadconfig text form.

    INT -> decimal, FLOAT -> printf "%f", BOOL -> "1"/"0", STR -> as is.
    BLOB has no text form. Raises ConversionError when the value does not
    match its type tag or the rendered text does not fit in max_len bytes.
    """
    if vtype == VarType.STR:
        if not isinstance(value, str):
            raise ConversionError(f"value of {name} is not a string", name=name, type=vtype.value)
        text = value
    elif vtype == VarType.BOOL:
        if not isinstance(value, bool):
            raise ConversionError(f"value of {name} is not a boolean", name=name, type=vtype.value)
        text = "1" if value else "0"
    elif vtype == VarType.INT:
        # bool is an int subclass; a bool tagged INT is a caller bug
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConversionError(f"value of {name} is not an integer", name=name, type=vtype.value)
        text = "%d" % value
    elif vtype == VarType.FLOAT:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConversionError(f"value of {name} is not a float", name=name, type=vtype.value)
        text = "%f" % float(value)
    else:
        raise ConversionError(f"{vtype.value} value of {name} has no text form", name=name, type=vtype.value)

    if len(text.encode("utf-8")) >= int(max_len):
        raise ConversionError(f"value of {name} exceeds {max_len} bytes", name=name, type=vtype.value)
    return text
