from decimal import ROUND_DOWN, Decimal, DecimalException, localcontext

from .errors import InvalidTimestampFormat

# Millisecond values with this many integer digits or more are out of range.
MAX_MILLIS_DIGITS = 19


def parse_exponential_timestamp(value: str) -> int:
    """
    Parses a TIMESTAMP cell such as "1.422943323461E9" (epoch seconds in
    exponential notation) into integer milliseconds since the epoch.

    The result is truncated toward zero. Decimal arithmetic keeps the
    conversion exact, so no float rounding leaks into the millisecond digit.
    """
    sep = value.find("E")
    if sep < 0:
        raise InvalidTimestampFormat(value, "missing exponent separator 'E'")
    if "." not in value[:sep]:
        raise InvalidTimestampFormat(value, "mantissa has no decimal point")

    try:
        exponent = int(value[sep + 1:])
        mantissa = Decimal(value[:sep])
    except (ValueError, DecimalException) as e:
        raise InvalidTimestampFormat(value, str(e)) from e

    if not mantissa.is_finite():
        raise InvalidTimestampFormat(value, "mantissa is not a finite number")

    try:
        with localcontext() as ctx:
            ctx.prec = max(ctx.prec, len(mantissa.as_tuple().digits))
            ctx.rounding = ROUND_DOWN
            # seconds -> milliseconds
            millis = mantissa.scaleb(exponent + 3)
    except DecimalException as e:
        raise InvalidTimestampFormat(value, "exponent out of range") from e

    if millis and millis.adjusted() >= MAX_MILLIS_DIGITS:
        raise InvalidTimestampFormat(value, "timestamp out of range")
    return int(millis)
