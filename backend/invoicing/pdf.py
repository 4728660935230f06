from typing import Optional, Dict
import os
import logging
from datetime import date
from decimal import Decimal

from jinja2 import Environment, FileSystemLoader, select_autoescape

from . import config
from .totals import to_decimal

TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), 'templates')
env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(['html', 'xml'])
)

DOCUMENT_TYPE_LABELS = {
    'INVOICE': 'Tax Invoice',
    'INVOICE_RECEIPT': 'Tax Invoice / Receipt',
    'RECEIPT': 'Receipt',
    'QUOTE': 'Price Quote',
}


def money(val) -> str:
    if val is None or val == '':
        return ''
    return f"{config.CURRENCY_SYMBOL}{to_decimal(val):,.2f}"


def quantity(val) -> str:
    d = to_decimal(val)
    # whole quantities print without decimals
    return str(d.quantize(Decimal(1))) if d == d.to_integral_value() else str(d.normalize())


def day(val) -> str:
    if not val:
        return ''
    if isinstance(val, date):
        return val.strftime('%d/%m/%Y')
    return date.fromisoformat(str(val)[:10]).strftime('%d/%m/%Y')


env.filters['money'] = money
env.filters['quantity'] = quantity
env.filters['day'] = day


def document_filename(document: Dict) -> str:
    return f"document-{document.get('document_number')}.pdf"


def render_document_html(document: Dict) -> str:
    tpl = env.get_template('document.html')
    ctx = {
        'document': document,
        'title': DOCUMENT_TYPE_LABELS.get(document.get('type'), document.get('type')),
        'business': document.get('user') or {},
        'client': document.get('client') or {},
        'items': document.get('items') or [],
        'show_vat': document.get('type') != 'QUOTE',
    }
    return tpl.render(**ctx)


def document_to_pdf_bytes(document: Dict) -> Optional[bytes]:
    html = render_document_html(document)
    try:
        # WeasyPrint needs pango/cairo at import time
        from weasyprint import HTML
        return HTML(string=html, base_url=TEMPLATES_DIR).write_pdf()
    except Exception as exc:
        logging.warning('WeasyPrint not available or failed: %s', exc)
        return None
