"""Report aggregation over document rows.

Everything here is pure: callers fetch the rows from the repository and pass
``today`` explicitly, so the period arithmetic can be tested without a clock.
"""
import calendar
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from .totals import quantize_two, to_decimal

REVENUE_TYPES = ('INVOICE', 'INVOICE_RECEIPT')
VAT_TYPES = ('INVOICE', 'INVOICE_RECEIPT', 'RECEIPT')
BILLED_STATUSES = ('SENT', 'PAID')
PENDING_STATUS = 'SENT'

GROUP_BY_CHOICES = ('day', 'week', 'month')


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def add_months(d: date, months: int) -> date:
    """First day of the month ``months`` away from d's month."""
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def issue_date(document: Dict) -> Optional[date]:
    value = document.get('issue_date')
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def sum_field(documents: Iterable[Dict], field: str) -> Decimal:
    return quantize_two(sum((to_decimal(d.get(field)) for d in documents), Decimal('0')))


def resolve_vat_period(
    period: Optional[str],
    start_date: Optional[date],
    end_date: Optional[date],
    today: date,
) -> Tuple[date, date]:
    """Reporting window for the VAT report.

    monthly   -> current calendar month
    bimonthly -> current two-month VAT period (Jan-Feb, Mar-Apr, ...)
    otherwise the explicit range when both ends are given, else the current month.
    """
    if period == 'monthly':
        return month_start(today), month_end(today)
    if period == 'bimonthly':
        first_month = ((today.month - 1) // 2) * 2 + 1
        start = date(today.year, first_month, 1)
        return start, month_end(add_months(start, 1))
    if start_date and end_date:
        return start_date, end_date
    return month_start(today), month_end(today)


def vat_report(documents: List[Dict], start: date, end: date) -> Dict:
    return {
        'summary': {
            'total_transactions': len(documents),
            'total_subtotal': sum_field(documents, 'subtotal'),
            'total_vat': sum_field(documents, 'vat_amount'),
            'total_amount': sum_field(documents, 'total'),
            'period': {'start': start, 'end': end},
        },
        'documents': documents,
        'by_type': {
            'invoices': [d for d in documents if d.get('type') == 'INVOICE'],
            'invoice_receipts': [d for d in documents if d.get('type') == 'INVOICE_RECEIPT'],
            'receipts': [d for d in documents if d.get('type') == 'RECEIPT'],
        },
    }


def _group_key(d: date, group_by: str) -> str:
    if group_by == 'day':
        return d.isoformat()
    if group_by == 'week':
        # weeks start on Sunday
        return (d - timedelta(days=(d.weekday() + 1) % 7)).isoformat()
    return f'{d.year}-{d.month:02d}'


def group_income(documents: List[Dict], group_by: str = 'month') -> Dict[str, Dict]:
    grouped: Dict[str, Dict] = {}
    for doc in documents:
        d = issue_date(doc)
        if d is None:
            continue
        bucket = grouped.setdefault(_group_key(d, group_by), {'revenue': Decimal('0'), 'count': 0, 'documents': []})
        bucket['revenue'] = quantize_two(bucket['revenue'] + to_decimal(doc.get('total')))
        bucket['count'] += 1
        bucket['documents'].append(doc)
    return grouped


def income_report(documents: List[Dict], start: date, end: date, group_by: str = 'month') -> Dict:
    return {
        'period': {'start': start, 'end': end},
        'total': sum_field(documents, 'total'),
        'count': len(documents),
        'grouped': group_income(documents, group_by),
    }


def client_revenue(clients: List[Dict], documents: List[Dict]) -> List[Dict]:
    by_client: Dict[str, List[Dict]] = {}
    for doc in documents:
        by_client.setdefault(doc.get('client_id'), []).append(doc)
    stats = []
    for client in clients:
        docs = by_client.get(client['id'], [])
        stats.append({
            'id': client['id'],
            'name': client.get('name'),
            'document_count': len(docs),
            'total_revenue': sum_field(docs, 'total'),
        })
    stats.sort(key=lambda s: s['total_revenue'], reverse=True)
    return stats


def monthly_chart(documents: List[Dict], today: date, months: int = 6) -> List[Dict]:
    """Revenue per month for the last ``months`` months, oldest first, ending with today's month."""
    chart = []
    for offset in range(months - 1, -1, -1):
        start = add_months(today, -offset)
        end = month_end(start)
        docs = [doc for doc in documents if issue_date(doc) and start <= issue_date(doc) <= end]
        chart.append({
            'month': f'{start.year}-{start.month:02d}',
            'label': calendar.month_abbr[start.month],
            'revenue': sum_field(docs, 'total'),
            'count': len(docs),
        })
    return chart


def dashboard(
    documents: List[Dict],
    today: date,
    client_count: int,
    product_count: int,
    pending_invoices: int,
    recent_documents: List[Dict],
) -> Dict:
    """documents: billed revenue documents issued since the earlier of Jan 1 and the chart start."""
    start_of_month = month_start(today)
    start_of_year = date(today.year, 1, 1)
    monthly = [d for d in documents if issue_date(d) and issue_date(d) >= start_of_month]
    yearly = [d for d in documents if issue_date(d) and issue_date(d) >= start_of_year]
    return {
        'monthly_revenue': sum_field(monthly, 'total'),
        'monthly_vat': sum_field(monthly, 'vat_amount'),
        'yearly_revenue': sum_field(yearly, 'total'),
        'yearly_vat': sum_field(yearly, 'vat_amount'),
        'client_count': client_count,
        'product_count': product_count,
        'pending_invoices': pending_invoices,
        'recent_documents': recent_documents,
        'chart_data': monthly_chart(documents, today),
    }


def dashboard_window_start(today: date, months: int = 6) -> date:
    return min(date(today.year, 1, 1), add_months(today, -(months - 1)))
