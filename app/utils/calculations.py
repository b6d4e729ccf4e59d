"""Pay calculations for timesheet submissions"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

DEFAULT_HOURLY_RATE = Decimal('75')
DEFAULT_OVERTIME_MULTIPLIER = Decimal('1.5')

PAY_TYPE_HOURLY = 'hourly'
PAY_TYPE_FIXED = 'fixed'

CENT = Decimal('0.01')


def to_safe_number(value):
    """Coerce user or database input to a Decimal; anything unusable is 0"""
    if value is None or isinstance(value, bool):
        return Decimal('0')
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal('0')
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal('0')
    return number if number.is_finite() else Decimal('0')


def round_currency(amount):
    return to_safe_number(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def default_overtime_rate(hourly_rate, multiplier=DEFAULT_OVERTIME_MULTIPLIER):
    return round_currency(to_safe_number(hourly_rate) * to_safe_number(multiplier))


def calculate_hourly_total(regular_rate, regular_hours, overtime_rate, overtime_hours):
    regular_amount = round_currency(to_safe_number(regular_rate) * to_safe_number(regular_hours))
    overtime_amount = round_currency(to_safe_number(overtime_rate) * to_safe_number(overtime_hours))
    return {
        'regular_amount': regular_amount,
        'overtime_amount': overtime_amount,
        'total': round_currency(regular_amount + overtime_amount)
    }


def calculate_fixed_total(monthly_rate):
    return {'total': round_currency(monthly_rate)}


def normalize_pay_type(value):
    if isinstance(value, str) and value.strip().lower() == PAY_TYPE_FIXED:
        return PAY_TYPE_FIXED
    return PAY_TYPE_HOURLY


def calculate_total_for_storage(pay_type, regular_hours, overtime_hours,
                                regular_rate, overtime_rate, monthly_rate):
    """Total written to submissions.total_amount and printed on the invoice"""
    if normalize_pay_type(pay_type) == PAY_TYPE_FIXED:
        return calculate_fixed_total(monthly_rate)['total']
    return calculate_hourly_total(regular_rate, regular_hours, overtime_rate, overtime_hours)['total']
