import datetime
import enum
import logging
import struct

logger = logging.getLogger(__name__)


#
# Wire types
#

class FieldType(enum.IntEnum):
    """
    Temporal column type tags, as found in a table map event.

    The numeric values are those of ``enum_field_types`` in the MySQL
    client protocol.
    """
    TIMESTAMP = 7
    DATE = 10
    TIME = 11
    DATETIME = 12
    YEAR = 13
    NEWDATE = 14
    TIMESTAMP2 = 17
    DATETIME2 = 18
    TIME2 = 19


class NullableColumn(enum.Enum):
    NOT_NULLABLE = 0
    NULLABLE = 1


#
# Errors
#

class BinlogTimeError(ValueError):
    """Base class for all errors raised by this package."""


class TruncatedBufferError(BinlogTimeError):
    """Fewer bytes are available than the encoding requires."""


class MetadataTooShortError(BinlogTimeError):
    """The column metadata does not contain the precision byte."""


class InvalidPrecisionError(BinlogTimeError):
    """The fractional seconds precision is not within 0-6."""


class UnsupportedFieldTypeError(BinlogTimeError):
    """The field type is not a temporal type handled by this package."""


#
# Constants
#

MAX_PRECISION = 6

YEAR_OFFSET = 1900

# equivalent to DATETIMEF_INT_OFS in sql-common/my_time.c
DATETIMEF_INT_OFS = 0x8000000000

# indexed by the number of fractional bytes
FRACTION_SCALE = [1, 10000, 100, 1]

EPOCH = datetime.datetime(1970, 1, 1)

YEAR_SIZE = 1
DATE_SIZE = 3
TIME_SIZE = 3
TIMESTAMP_SIZE = 4
DATETIME_SIZE = 8
TIME2_FIXED_SIZE = 3
TIMESTAMP2_FIXED_SIZE = 4
DATETIME2_FIXED_SIZE = 5


#
# Byte cursor helpers
#

def read_slice(data, n):
    """
    Split `n` bytes off the front of `data`.

    :return: the first `n` bytes and the remainder
    :raises TruncatedBufferError: if `data` is shorter than `n` bytes
    """
    if len(data) < n:
        raise TruncatedBufferError(
            "need {0:d} bytes; got {1:d}".format(n, len(data)))
    return data[:n], data[n:]


def uint24_le(value):
    return value[0] | value[1] << 8 | value[2] << 16


def uint32_le(value, _unpack=struct.Struct('<L').unpack):
    return _unpack(bytes(value))[0]


def uint64_le(value, _unpack=struct.Struct('<Q').unpack):
    return _unpack(bytes(value))[0]


def int8_be(value, _unpack=struct.Struct('>b').unpack):
    return _unpack(bytes(value))[0]


def int16_be(value, _unpack=struct.Struct('>h').unpack):
    return _unpack(bytes(value))[0]


def int24_be(value, _unpack=struct.Struct('>l').unpack):
    # Pad on the right so the sign bit lands in place, then shift back.
    return _unpack(bytes(value) + b'\x00')[0] >> 8


def int32_be(value, _unpack=struct.Struct('>l').unpack):
    return _unpack(bytes(value))[0]


def uint24_be(value, _unpack=struct.Struct('>L').unpack):
    return _unpack(b'\x00' + bytes(value))[0]


def uint32_be(value, _unpack=struct.Struct('>L').unpack):
    return _unpack(bytes(value))[0]


def uint40_be(value, _unpack=struct.Struct('>Q').unpack):
    return _unpack(b'\x00\x00\x00' + bytes(value))[0]


def fractional_bytes_for(precision):
    """
    Number of bytes used for the fractional part at `precision` digits.

    :raises InvalidPrecisionError: if `precision` is not within 0-6
    """
    if not 0 <= precision <= MAX_PRECISION:
        raise InvalidPrecisionError(
            "invalid fractional seconds precision: {0!r}".format(precision))
    return (precision + 1) // 2


_FRACTION_READERS = [None, int8_be, int16_be, int24_be]


#
# Decoded values
#

class Moment(object):
    """
    Container for a decoded temporal column value.

    Each constituent part is accessible as an instance attribute. These
    are: ``year``, ``month``, ``day``, ``hour``, ``minute``, ``second``,
    ``microsecond``, ``nanosecond``, and ``tz_offset``. Parts that the
    column type does not carry are ``None``; for instance a ``YEAR``
    column only sets ``year``, and a ``TIME2`` column leaves the date
    parts unset. ``None`` takes the place of the zero that MySQL reports
    for such parts, so a missing part cannot be mistaken for a stored
    zero month or day.

    All values decoded from a binary log are in UTC, so ``tz_offset`` is
    always ``0`` for them.

    This class is intended to be a read-only immutable data structure.
    Instances are hashable and can be compared to each other, with
    earlier values sorting first. Comparing values of different column
    types (e.g. a date against a time) is not supported.
    """
    __slots__ = [
        'year', 'month', 'day',
        'hour', 'minute', 'second',
        'microsecond', 'nanosecond', 'tz_offset',
        '_has_date', '_has_time', '_struct']

    is_zero = False

    def __init__(self, year=None, month=None, day=None,
                 hour=None, minute=None, second=None,
                 microsecond=None, tz_offset=0):

        #: Year component.
        self.year = year

        #: Month component. Legacy ``DATE`` columns may hold ``0``.
        self.month = month

        #: Day component. Legacy ``DATE`` columns may hold ``0``.
        self.day = day

        #: Hour component. ``TIME`` columns may exceed 23.
        self.hour = hour

        #: Minute component.
        self.minute = minute

        #: Second component.
        self.second = second

        #: Microsecond component.
        self.microsecond = microsecond

        #: Nanosecond component, derived from :py:attr:`microsecond`.
        self.nanosecond = None if microsecond is None else microsecond * 1000

        #: Time zone offset in minutes.
        self.tz_offset = tz_offset

        self._has_date = not (year is None and month is None and day is None)
        self._has_time = not (hour is None and minute is None
                              and second is None)

        self._struct = (
            self.year, self.month, self.day,
            self.hour, self.minute, self.second, self.nanosecond)

    @classmethod
    def from_datetime(cls, value):
        return cls(
            value.year, value.month, value.day,
            value.hour, value.minute, value.second,
            value.microsecond)

    def __str__(self):
        buf = []

        if self._has_date:
            buf.append("{0:04d}".format(self.year)
                       if self.year is not None else "????")
            if self.month is not None or self.day is not None:
                buf.append("-{0:02d}".format(self.month)
                           if self.month is not None else "-??")
                buf.append("-{0:02d}".format(self.day)
                           if self.day is not None else "-??")

        if self._has_time:
            if self._has_date:
                buf.append(" ")
            buf.append("{0:02d}:{1:02d}:{2:02d}".format(
                self.hour or 0, self.minute or 0, self.second or 0))

        if self.microsecond:
            buf.append(".{0:06d}".format(self.microsecond).rstrip("0"))

        return ''.join(buf)

    def __repr__(self):
        return "<binlogtime.Moment '{0}'>".format(self)

    def __eq__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self._struct == other._struct

    def __ne__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self._struct != other._struct

    def __gt__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self._struct > other._struct

    def __ge__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self._struct >= other._struct

    def __lt__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self._struct < other._struct

    def __le__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self._struct <= other._struct

    def __hash__(self):
        return hash(self._struct)

    def _tzinfo(self):
        if self.tz_offset is None:
            return None
        if self.tz_offset == 0:
            return datetime.timezone.utc
        return datetime.timezone(datetime.timedelta(minutes=self.tz_offset))

    def datetime(self, strict=True):
        """
        Convert this value to a time zone aware ``datetime.datetime``.

        Since the classes in the ``datetime`` module do not support
        missing values, this fails with :py:exc:`ValueError` when one of
        the required components is not set, or when a component is out
        of range for the ``datetime`` module (e.g. a zero month in a
        legacy ``DATE`` column).

        With `strict` set to `False`, missing components are substituted
        by a default value instead, e.g. a missing time becomes
        `00:00:00`.

        :param bool strict: whether to use strict conversion rules
        :return: converted value
        :type: `datetime.datetime`
        """
        return datetime.datetime.combine(
            self.date(strict=strict),
            self.time(strict=strict))

    def date(self, strict=True):
        """
        Convert this value to a ``datetime.date`` instance.

        See :py:meth:`datetime()` for more information.
        """
        if not strict:
            return datetime.date(
                self.year if self.year is not None else 1,
                self.month or 1,
                self.day or 1)

        if None in (self.year, self.month, self.day):
            raise ValueError("incomplete date information")

        return datetime.date(self.year, self.month, self.day)

    def time(self, strict=True):
        """
        Convert this value to a ``datetime.time`` instance.

        See :py:meth:`datetime()` for more information.
        """
        us = self.microsecond if self.microsecond is not None else 0

        if not strict:
            return datetime.time(
                self.hour if self.hour is not None else 0,
                self.minute if self.minute is not None else 0,
                self.second if self.second is not None else 0,
                us, tzinfo=self._tzinfo())

        if None in (self.hour, self.minute, self.second):
            raise ValueError("incomplete time information")

        return datetime.time(
            self.hour, self.minute, self.second, us, tzinfo=self._tzinfo())


class ZeroValue(object):
    """
    Marker for the all-zero placeholder MySQL stores for missing dates
    and times.

    There are exactly two instances, :py:data:`ZERO_DATE` and
    :py:data:`ZERO_TIME`. Their string form is the textual zero value,
    so they can be put into a row as is.
    """
    __slots__ = ['field_type', '_text']

    is_zero = True

    def __init__(self, field_type, text):
        self.field_type = field_type
        self._text = text

    def __str__(self):
        return self._text

    def __repr__(self):
        return "<binlogtime.ZeroValue '{0}'>".format(self._text)


ZERO_DATE = ZeroValue(FieldType.DATE, "0000-00-00")
ZERO_TIME = ZeroValue(FieldType.TIME, "00:00:00")


#
# Field descriptors
#

class FieldDescriptor(object):
    """
    Parser for the values of a single temporal column.

    A descriptor is created once per column when the table definition is
    known, and then reused for every row. It holds no state besides its
    configuration, so it can be shared between threads.

    .. note::

       Use one of the ``new_*_field_descriptor()`` functions instead of
       instantiating descriptor classes directly.
    """
    __slots__ = ['field_type', 'nullable', 'size']

    def __init__(self, field_type, nullable, size):
        #: Wire type, a :py:class:`FieldType`.
        self.field_type = field_type

        #: A :py:class:`NullableColumn`. This is informational only and
        #: does not influence decoding.
        self.nullable = nullable

        #: Number of bytes consumed per value.
        self.size = size

    def is_nullable(self):
        return self.nullable is NullableColumn.NULLABLE

    def parse_value(self, data):
        """
        Parse one value from the front of `data`.

        :param bytes data: row data positioned at this column's value
        :return: the decoded value and the remaining bytes
        :rtype: tuple
        :raises TruncatedBufferError: if `data` is too short
        """
        raise NotImplementedError

    def read_value(self, fp):
        """
        Read one value from a file-like object.

        This consumes exactly :py:attr:`size` bytes.

        :param file-like fp: readable file-like object
        :return: the decoded value
        """
        value, _ = self.parse_value(fp.read(self.size))
        return value

    def __repr__(self):
        return "<{0} {1} ({2})>".format(
            type(self).__name__, self.field_type.name, self.nullable.name)


class FixedLengthFieldDescriptor(FieldDescriptor):
    """Descriptor for the legacy types that have a constant width."""
    __slots__ = ['_decode']

    def __init__(self, field_type, nullable, size, decode):
        super().__init__(
            field_type, nullable, size)
        self._decode = decode

    def parse_value(self, data):
        raw, remaining = read_slice(data, self.size)
        return self._decode(raw), remaining


def _decode_year(b):
    return Moment(year=b[0] + YEAR_OFFSET)


def _decode_timestamp(b):
    return Moment.from_datetime(
        EPOCH + datetime.timedelta(seconds=uint32_le(b)))


def _decode_datetime(b):
    # See number_to_datetime (in sql-common/my_time.c)
    d, t = divmod(uint64_le(b), 1000000)
    return Moment(
        d // 10000, d % 10000 // 100, d % 100,
        t // 10000, t % 10000 // 100, t % 100, 0)


def _decode_date(b):
    # YYYYYYYY YYYYYYYM MMMDDDDD (little-endian)
    n = uint24_le(b)
    if n == 0:
        return ZERO_DATE
    return Moment(n // 512, n // 32 % 16, n % 32)


def _decode_time(b):
    # HHMMSS as a decimal number
    n = uint24_le(b)
    if n == 0:
        return ZERO_TIME
    return Moment(hour=n // 10000, minute=n % 10000 // 100, second=n % 100)


def new_year_field_descriptor(nullable):
    """Return a descriptor for ``YEAR`` columns (1 byte)."""
    return FixedLengthFieldDescriptor(
        FieldType.YEAR, nullable, YEAR_SIZE, _decode_year)


def new_timestamp_field_descriptor(nullable):
    """Return a descriptor for ``TIMESTAMP`` columns (4 bytes)."""
    return FixedLengthFieldDescriptor(
        FieldType.TIMESTAMP, nullable, TIMESTAMP_SIZE, _decode_timestamp)


def new_datetime_field_descriptor(nullable):
    """Return a descriptor for ``DATETIME`` columns (8 bytes)."""
    return FixedLengthFieldDescriptor(
        FieldType.DATETIME, nullable, DATETIME_SIZE, _decode_datetime)


def new_date_field_descriptor(nullable, field_type=FieldType.DATE):
    """
    Return a descriptor for ``DATE`` columns (3 bytes).

    A stored value of zero decodes to :py:data:`ZERO_DATE`.
    """
    return FixedLengthFieldDescriptor(
        field_type, nullable, DATE_SIZE, _decode_date)


def new_time_field_descriptor(nullable):
    """
    Return a descriptor for ``TIME`` columns (3 bytes).

    A stored value of zero decodes to :py:data:`ZERO_TIME`.
    """
    return FixedLengthFieldDescriptor(
        FieldType.TIME, nullable, TIME_SIZE, _decode_time)


class FractionalPrecision(object):
    """
    Fractional seconds precision of a ``TIME2``, ``TIMESTAMP2`` or
    ``DATETIME2`` column.

    The fraction follows the fixed part of a value as a big-endian
    signed integer of :py:attr:`extra_bytes` bytes.
    """
    __slots__ = ['precision', 'extra_bytes']

    def __init__(self, precision):
        self.extra_bytes = fractional_bytes_for(precision)
        self.precision = precision

    @classmethod
    def from_metadata(cls, metadata):
        """
        Consume the precision byte from column metadata.

        :return: a :py:class:`FractionalPrecision` and the remaining
            metadata
        """
        if len(metadata) < 1:
            raise MetadataTooShortError("metadata has too few bytes")
        return cls(metadata[0]), metadata[1:]

    def microseconds(self, value):
        """Convert the fractional bytes `value` into microseconds."""
        if not self.extra_bytes:
            return 0
        read = _FRACTION_READERS[self.extra_bytes]
        return read(value) * FRACTION_SCALE[self.extra_bytes]

    def __eq__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.precision == other.precision

    def __ne__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.precision != other.precision

    def __hash__(self):
        return hash(self.precision)


class FractionalFieldDescriptor(FieldDescriptor):
    """
    Common parsing for the types with fractional seconds.

    Subclasses set :py:attr:`fixed_size` and implement ``_decode()``,
    which receives the fixed part and the fraction in microseconds.
    """
    __slots__ = ['fraction']

    field_type_tag = None
    fixed_size = None

    def __init__(self, nullable, fraction):
        super().__init__(
            self.field_type_tag, nullable,
            self.fixed_size + fraction.extra_bytes)
        self.fraction = fraction

    @classmethod
    def from_metadata(cls, nullable, metadata):
        fraction, remaining = FractionalPrecision.from_metadata(metadata)
        descriptor = cls(nullable, fraction)
        logger.debug(
            "New %s descriptor: precision %d, %d bytes per value",
            descriptor.field_type.name, fraction.precision, descriptor.size)
        return descriptor, remaining

    @property
    def precision(self):
        return self.fraction.precision

    @property
    def extra_bytes(self):
        return self.fraction.extra_bytes

    def parse_value(self, data):
        raw, remaining = read_slice(data, self.size)
        fixed = raw[:self.fixed_size]
        usec = self.fraction.microseconds(raw[self.fixed_size:])
        return self._decode(fixed, usec), remaining

    def _decode(self, fixed, usec):
        raise NotImplementedError

    def __repr__(self):
        return "<{0} {1}({2:d}) ({3})>".format(
            type(self).__name__, self.field_type.name,
            self.precision, self.nullable.name)


def _borrow_fraction(hour, minute, second, usec):
    """
    Fold a negative fraction into the whole seconds.

    The fraction is stored signed; a negative one is taken from the
    seconds (and, if those run out, the minutes and hours) so that the
    resulting microseconds are within 0-999999. Other parts are left
    untouched, even when out of range.
    """
    if usec >= 0:
        return hour, minute, second, usec
    borrow, usec = divmod(usec, 1000000)
    second += borrow
    if second < 0:
        borrow, second = divmod(second, 60)
        minute += borrow
    if minute < 0:
        borrow, minute = divmod(minute, 60)
        hour += borrow
    return hour, minute, second, usec


class Time2FieldDescriptor(FractionalFieldDescriptor):
    __slots__ = []

    field_type_tag = FieldType.TIME2
    fixed_size = TIME2_FIXED_SIZE

    def _decode(self, fixed, usec):
        # .......H HHHHHHHH HMMMMMMS SSSSS (big-endian)
        # The sign bit and the offset used for negative values are not
        # interpreted.
        hms = uint24_be(fixed)
        hour, minute, second, usec = _borrow_fraction(
            hms >> 12 & 0x3ff, hms >> 6 & 0x3f, hms & 0x3f, usec)
        return Moment(
            hour=hour, minute=minute, second=second, microsecond=usec)


class Timestamp2FieldDescriptor(FractionalFieldDescriptor):
    __slots__ = []

    field_type_tag = FieldType.TIMESTAMP2
    fixed_size = TIMESTAMP2_FIXED_SIZE

    def _decode(self, fixed, usec):
        # See my_timestamp_from_binary (in sql-common/my_time.c)
        seconds = int32_be(fixed)
        return Moment.from_datetime(EPOCH + datetime.timedelta(
            microseconds=seconds * 1000000 + usec))


class DateTime2FieldDescriptor(FractionalFieldDescriptor):
    __slots__ = []

    field_type_tag = FieldType.DATETIME2
    fixed_size = DATETIME2_FIXED_SIZE

    def _decode(self, fixed, usec):
        # See TIME_from_longlong_datetime_packed (in sql-common/my_time.c)
        ymdhms = uint40_be(fixed) - DATETIMEF_INT_OFS

        ymd = ymdhms >> 17
        ym = ymd >> 5
        hms = ymdhms % (1 << 17)

        hour, minute, second, usec = _borrow_fraction(
            hms >> 12, hms >> 6 & 0x3f, hms & 0x3f, usec)
        return Moment(
            ym // 13, ym % 13, ymd % (1 << 5),
            hour, minute, second, usec)


def new_time2_field_descriptor(nullable, metadata):
    """
    Return a descriptor for ``TIME2`` columns.

    :param bytes metadata: column metadata; the first byte is the
        fractional seconds precision
    :return: the descriptor and the remaining metadata
    :raises MetadataTooShortError: if `metadata` is empty
    :raises InvalidPrecisionError: if the precision is not within 0-6
    """
    return Time2FieldDescriptor.from_metadata(nullable, metadata)


def new_timestamp2_field_descriptor(nullable, metadata):
    """
    Return a descriptor for ``TIMESTAMP2`` columns.

    See :py:func:`new_time2_field_descriptor()` for the arguments.
    """
    return Timestamp2FieldDescriptor.from_metadata(nullable, metadata)


def new_datetime2_field_descriptor(nullable, metadata):
    """
    Return a descriptor for ``DATETIME2`` columns.

    See :py:func:`new_time2_field_descriptor()` for the arguments.
    """
    return DateTime2FieldDescriptor.from_metadata(nullable, metadata)


_FIXED_LENGTH_CONSTRUCTORS = {
    FieldType.YEAR: new_year_field_descriptor,
    FieldType.DATE: new_date_field_descriptor,
    FieldType.TIME: new_time_field_descriptor,
    FieldType.TIMESTAMP: new_timestamp_field_descriptor,
    FieldType.DATETIME: new_datetime_field_descriptor,
}

_FRACTIONAL_CONSTRUCTORS = {
    FieldType.TIME2: new_time2_field_descriptor,
    FieldType.TIMESTAMP2: new_timestamp2_field_descriptor,
    FieldType.DATETIME2: new_datetime2_field_descriptor,
}


def new_temporal_field_descriptor(field_type, nullable, metadata=b''):
    """
    Return a descriptor for any temporal column type.

    This is what a table map parser calls for each column in turn,
    feeding the remaining metadata of one column into the next.

    :param field_type: a :py:class:`FieldType` or its numeric value
    :param NullableColumn nullable: nullability of the column
    :param bytes metadata: column metadata, starting at this column
    :return: the descriptor and the remaining metadata
    :raises UnsupportedFieldTypeError: for non-temporal types
    """
    try:
        field_type = FieldType(field_type)
    except ValueError:
        raise UnsupportedFieldTypeError(
            "not a temporal field type: {0!r}".format(field_type))

    if field_type in _FRACTIONAL_CONSTRUCTORS:
        return _FRACTIONAL_CONSTRUCTORS[field_type](nullable, metadata)

    if field_type is FieldType.NEWDATE:
        descriptor = new_date_field_descriptor(nullable, field_type)
    else:
        descriptor = _FIXED_LENGTH_CONSTRUCTORS[field_type](nullable)

    logger.debug(
        "New %s descriptor: %d bytes per value",
        field_type.name, descriptor.size)
    return descriptor, metadata
