import enum
from sqlalchemy import Enum


def enum_column_type(enum_cls: type[enum.Enum], name: str) -> Enum:
    """String-backed enum column storing member values.

    Unknown values are rejected both when writing (validate_strings) and when
    loading rows, so no untyped status ever leaves the storage layer.
    """
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=50,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )
