"""
Decoders for temporal column values in MySQL row-based binary log events
"""

__version__ = '0.1.0'

# Export public API

from .binlogtime import (  # noqa
    FieldType,
    NullableColumn,
    BinlogTimeError,
    TruncatedBufferError,
    MetadataTooShortError,
    InvalidPrecisionError,
    UnsupportedFieldTypeError,
    Moment,
    ZeroValue,
    ZERO_DATE,
    ZERO_TIME,
    FieldDescriptor,
    FractionalPrecision,
    fractional_bytes_for,
    read_slice,
    new_year_field_descriptor,
    new_date_field_descriptor,
    new_time_field_descriptor,
    new_timestamp_field_descriptor,
    new_datetime_field_descriptor,
    new_time2_field_descriptor,
    new_timestamp2_field_descriptor,
    new_datetime2_field_descriptor,
    new_temporal_field_descriptor,
)
