from enum import Enum
from typing import Union

from ..errors import UnknownEnumValue


class NamedEnum(Enum):
    """Enum whose values are the names accepted on the command line."""

    @classmethod
    def from_name(cls, name: Union[str, "NamedEnum"]):
        if isinstance(name, cls):
            return name
        for member in cls:
            if member.value == name:
                return member
        names = ", ".join(f"'{member.value}'" for member in cls)
        raise UnknownEnumValue(f"Unknown {cls.__name__}: '{name}'. Possible values: {names}")

    @classmethod
    def names(cls) -> list[str]:
        return [member.value for member in cls]
