from datetime import date
from decimal import Decimal
import asyncio

import pytest
from fastapi import HTTPException

from backend.invoicing import routes
from backend.invoicing import repository as repo
from backend.invoicing.schemas import DocumentCreate, DocumentItem, DocumentUpdate, StatusUpdate


@pytest.fixture(autouse=True)
def fixed_today(monkeypatch):
    monkeypatch.setattr(routes, '_today', lambda: date(2026, 3, 15))


def _create(user, client_id, doc_type='INVOICE', items=None, **extra):
    items = items or [DocumentItem(description='Design work', quantity=2, unit_price=Decimal('100.00'))]
    payload = DocumentCreate(client_id=client_id, type=doc_type, items=items, **extra)
    return asyncio.run(routes.create_document(payload, user=user))['data']


def test_create_invoice_numbers_and_totals_with_profile_vat(fake_db, owner, client_row):
    created = _create(owner, client_row['id'])

    assert created['document_number'] == 1
    assert created['type'] == 'INVOICE'
    assert created['status'] == 'DRAFT'
    assert created['issue_date'] == '2026-03-15'
    assert created['subtotal'] == 200.0
    assert created['vat_rate'] == 17.0
    assert created['vat_amount'] == 34.0
    assert created['total'] == 234.0
    assert created['client']['name'] == 'Globex'
    assert created['items'][0]['total'] == 200.0

    assert _create(owner, client_row['id'])['document_number'] == 2


def test_quote_is_stored_without_vat(fake_db, owner, client_row):
    quote = _create(owner, client_row['id'], 'QUOTE')
    assert quote['vat_amount'] == 0.0
    assert quote['total'] == 200.0
    # rate is kept so a later conversion can apply it
    assert quote['vat_rate'] == 17.0


def test_explicit_vat_rate_wins(fake_db, owner, client_row):
    created = _create(owner, client_row['id'], 'RECEIPT', vat_rate=Decimal('0'))
    assert created['vat_amount'] == 0.0
    assert created['total'] == 200.0


def test_create_rejects_unknown_client(fake_db, owner):
    with pytest.raises(HTTPException) as exc:
        _create(owner, 'no-such-client')
    assert exc.value.status_code == 404


def test_create_rejects_other_tenants_product(fake_db, owner, client_row):
    foreign = fake_db.add('products', user_id='u2', name='Not yours', price=1)
    items = [DocumentItem(product_id=foreign['id'], description='x', quantity=1, unit_price=Decimal('1'))]
    with pytest.raises(HTTPException) as exc:
        _create(owner, client_row['id'], items=items)
    assert exc.value.status_code == 400


def test_create_failure_surfaces_500(fake_db, owner, client_row, monkeypatch):
    monkeypatch.setattr(repo, 'create_document', lambda user_id, record, items: None)
    with pytest.raises(HTTPException) as exc:
        _create(owner, client_row['id'])
    assert exc.value.status_code == 500


def test_update_recomputes_with_stored_rate_and_keeps_number(fake_db, owner, client_row):
    created = _create(owner, client_row['id'])
    # changing the profile rate does not touch existing documents
    fake_db.rows('profiles')[0]['vat_rate'] = 18
    owner = dict(owner, vat_rate=18)

    payload = DocumentUpdate(
        status='SENT',
        notes='net 30',
        items=[DocumentItem(description='Design work', quantity=3, unit_price=Decimal('100.00'))],
    )
    updated = asyncio.run(routes.update_document(created['id'], payload, user=owner))['data']
    assert updated['document_number'] == 1
    assert updated['type'] == 'INVOICE'
    assert updated['status'] == 'SENT'
    assert updated['notes'] == 'net 30'
    assert updated['subtotal'] == 300.0
    assert updated['vat_amount'] == 51.0
    assert updated['total'] == 351.0
    assert len(fake_db.rows('document_items')) == 1


def test_update_missing_document(fake_db, owner):
    payload = DocumentUpdate(items=[DocumentItem(description='x', quantity=1, unit_price=Decimal('1'))])
    with pytest.raises(HTTPException) as exc:
        asyncio.run(routes.update_document('missing', payload, user=owner))
    assert exc.value.status_code == 404


def test_status_patch_and_delete(fake_db, owner, client_row):
    created = _create(owner, client_row['id'])
    res = asyncio.run(routes.update_document_status(created['id'], StatusUpdate(status='PAID'), user=owner))
    assert res['data']['status'] == 'PAID'

    asyncio.run(routes.remove_document(created['id'], user=owner))
    with pytest.raises(HTTPException) as exc:
        asyncio.run(routes.get_document(created['id'], user=owner))
    assert exc.value.status_code == 404


def test_convert_quote_to_invoice(fake_db, owner, client_row):
    _create(owner, client_row['id'])  # invoice #1 already exists
    items = [DocumentItem(description='Workshop', quantity=2, unit_price=Decimal('50.00'))]
    quote = _create(owner, client_row['id'], 'QUOTE', items=items, notes='valid 30 days')
    # the invoice takes the quote's rate, not the profile's current one
    fake_db.rows('profiles')[0]['vat_rate'] = 18
    owner = dict(owner, vat_rate=18)

    invoice = asyncio.run(routes.convert_quote(quote['id'], user=owner))['data']
    assert invoice['vat_rate'] == 17.0
    assert invoice['type'] == 'INVOICE'
    assert invoice['document_number'] == 2
    assert invoice['status'] == 'DRAFT'
    assert invoice['issue_date'] == '2026-03-15'
    assert invoice['notes'] == 'valid 30 days'
    assert invoice['subtotal'] == 100.0
    assert invoice['vat_amount'] == 17.0
    assert invoice['total'] == 117.0
    assert [it['description'] for it in invoice['items']] == ['Workshop']

    stored_quote = next(d for d in fake_db.rows('documents') if d['id'] == quote['id'])
    assert stored_quote['status'] == 'CANCELLED'

    with pytest.raises(HTTPException) as exc:
        asyncio.run(routes.convert_quote(quote['id'], user=owner))
    assert exc.value.status_code == 409


def test_convert_rejects_non_quotes(fake_db, owner, client_row):
    invoice = _create(owner, client_row['id'])
    with pytest.raises(HTTPException) as exc:
        asyncio.run(routes.convert_quote(invoice['id'], user=owner))
    assert exc.value.status_code == 404
    assert exc.value.detail == 'Quote not found'


def test_next_number_route(fake_db, owner, client_row):
    _create(owner, client_row['id'], 'RECEIPT')
    res = asyncio.run(routes.next_document_number(routes.DocumentType.RECEIPT, user=owner))
    assert res['data'] == {'next_number': 2}
    res = asyncio.run(routes.next_document_number(routes.DocumentType.QUOTE, user=owner))
    assert res['data'] == {'next_number': 1}


def test_list_documents_pagination(fake_db, owner, client_row):
    for _ in range(3):
        _create(owner, client_row['id'])
    res = asyncio.run(routes.list_documents(page=2, limit=2, user=owner))
    assert len(res['data']) == 1
    assert res['pagination'] == {'total': 3, 'page': 2, 'limit': 2, 'pages': 2}

    with pytest.raises(HTTPException) as exc:
        asyncio.run(routes.list_documents(page=0, user=owner))
    assert exc.value.status_code == 400


def test_failed_update_restores_totals_and_items(fake_db, owner, client_row):
    items = [DocumentItem(description='Design work', quantity=1, unit_price=Decimal('100.00'))]
    created = _create(owner, client_row['id'], items=items)
    rejected = []

    def reject_first_item_insert(table, rec):
        if table == 'document_items' and not rejected:
            rejected.append(rec)
            raise Exception('insert failed')

    fake_db.before_insert = reject_first_item_insert
    payload = DocumentUpdate(items=[DocumentItem(description='Design work', quantity=5, unit_price=Decimal('100.00'))])
    with pytest.raises(HTTPException) as exc:
        asyncio.run(routes.update_document(created['id'], payload, user=owner))
    assert exc.value.status_code == 500

    stored = fake_db.rows('documents')[0]
    assert stored['total'] == 117.0
    assert [it['quantity'] for it in fake_db.rows('document_items')] == [1.0]
