from decimal import Decimal, ROUND_HALF_UP, getcontext
from typing import List, Dict, Optional

getcontext().prec = 28

QUOTE = 'QUOTE'


def quantize_two(d: Decimal) -> Decimal:
    return d.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def to_decimal(value, default: str = '0') -> Decimal:
    if value is None or value == '':
        return Decimal(default)
    if isinstance(value, Decimal):
        return value
    # floats coming back from PostgREST go through str() to avoid binary noise
    return Decimal(str(value))


def resolve_vat_rate(requested=None, existing=None, profile=None, default=None) -> Decimal:
    """Pick the first VAT rate that is set: request, stored document, business profile, default."""
    for candidate in (requested, existing, profile, default):
        if candidate is not None:
            return to_decimal(candidate)
    return Decimal('0')


def line_total(quantity, unit_price, vat_rate=None, includes_vat: bool = False) -> Decimal:
    gross = to_decimal(quantity) * to_decimal(unit_price)
    rate = to_decimal(vat_rate)
    if includes_vat and rate:
        return quantize_two(gross / (Decimal(1) + rate / Decimal(100)))
    return quantize_two(gross)


def calculate_document_totals(items: List[Dict], vat_rate, doc_type: Optional[str] = None) -> Dict:
    """
    items: list of { quantity, unit_price, includes_vat? }
    returns: { subtotal, vat_rate, vat_amount, total, lines }

    Quotes never carry VAT; their prices are taken as entered.
    """
    rate = to_decimal(vat_rate)
    effective_rate = Decimal('0') if doc_type == QUOTE else rate

    lines = []
    subtotal = Decimal('0')
    for it in items:
        lt = line_total(it['quantity'], it['unit_price'], effective_rate, bool(it.get('includes_vat')))
        lines.append(lt)
        subtotal += lt

    subtotal = quantize_two(subtotal)
    vat_amount = quantize_two(subtotal * effective_rate / Decimal(100))
    total = quantize_two(subtotal + vat_amount)

    return {
        'subtotal': subtotal,
        'vat_rate': rate,
        'vat_amount': vat_amount,
        'total': total,
        'lines': lines,
    }
