import logging
import math
from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response, HTMLResponse
from starlette.concurrency import run_in_threadpool

from . import config
from . import repository
from . import reports as reports_module
from . import pdf as pdf_module
from .auth import get_current_user, require_editor
from .schemas import ClientCreate, ClientUpdate, ProductCreate, ProductUpdate
from .schemas import DocumentCreate, DocumentUpdate, DocumentStatus, DocumentType, StatusUpdate
from .totals import calculate_document_totals, resolve_vat_rate


router = APIRouter(prefix="/api")


def _today() -> date:
    return date.today()


def _pagination(total: int, page: int, limit: int) -> Dict:
    return {
        'total': total,
        'page': page,
        'limit': limit,
        'pages': math.ceil(total / limit) if limit else 0,
    }


def _check_paging(page: int, limit: int):
    if page < 1 or limit < 1:
        raise HTTPException(status_code=400, detail='page and limit must be positive')


# ---------------------------------------------------------------------------
# clients
# ---------------------------------------------------------------------------

@router.get('/clients', tags=["Clients"])
async def list_clients(search: Optional[str] = None, page: int = 1, limit: int = 20, user: Dict = Depends(get_current_user)):
    _check_paging(page, limit)
    res = await run_in_threadpool(repository.list_clients, user['id'], search, page, limit)
    if res is None:
        raise HTTPException(status_code=500, detail='Failed to get clients')
    return {"status": "success", "data": res['rows'], "pagination": _pagination(res['total'], page, limit)}


@router.get('/clients/{client_id}', tags=["Clients"])
async def get_client(client_id: str, user: Dict = Depends(get_current_user)):
    client = await run_in_threadpool(repository.get_client, user['id'], client_id)
    if not client:
        raise HTTPException(status_code=404, detail='Client not found')
    documents = await run_in_threadpool(repository.list_recent_documents, user['id'], 10, client_id)
    client['documents'] = documents or []
    return {"status": "success", "data": client}


@router.post('/clients', status_code=201, tags=["Clients"])
async def create_client(payload: ClientCreate, user: Dict = Depends(require_editor)):
    created = await run_in_threadpool(repository.create_client, user['id'], payload.model_dump())
    if not created:
        raise HTTPException(status_code=500, detail='Failed to create client')
    return {"status": "success", "data": created}


@router.put('/clients/{client_id}', tags=["Clients"])
async def update_client(client_id: str, changes: ClientUpdate, user: Dict = Depends(require_editor)):
    # allow partial updates
    rec = changes.model_dump(exclude_unset=True)
    if not rec:
        raise HTTPException(status_code=400, detail='No changes provided')
    existing = await run_in_threadpool(repository.get_client, user['id'], client_id)
    if not existing:
        raise HTTPException(status_code=404, detail='Client not found')
    updated = await run_in_threadpool(repository.update_client, user['id'], client_id, rec)
    if not updated:
        raise HTTPException(status_code=500, detail='Failed to update client')
    return {"status": "success", "data": updated}


@router.delete('/clients/{client_id}', tags=["Clients"])
async def remove_client(client_id: str, user: Dict = Depends(require_editor)):
    existing = await run_in_threadpool(repository.get_client, user['id'], client_id)
    if not existing:
        raise HTTPException(status_code=404, detail='Client not found')
    res = await run_in_threadpool(repository.delete_client, user['id'], client_id)
    if res == 'in_use':
        raise HTTPException(status_code=409, detail='Client has documents and cannot be deleted')
    if res is None:
        raise HTTPException(status_code=500, detail='Failed to delete client')
    return {"status": "success"}


# ---------------------------------------------------------------------------
# products
# ---------------------------------------------------------------------------

@router.get('/products', tags=["Products"])
async def list_products(search: Optional[str] = None, page: int = 1, limit: int = 50, user: Dict = Depends(get_current_user)):
    _check_paging(page, limit)
    res = await run_in_threadpool(repository.list_products, user['id'], search, page, limit)
    if res is None:
        raise HTTPException(status_code=500, detail='Failed to get products')
    return {"status": "success", "data": res['rows'], "pagination": _pagination(res['total'], page, limit)}


@router.get('/products/{product_id}', tags=["Products"])
async def get_product(product_id: str, user: Dict = Depends(get_current_user)):
    product = await run_in_threadpool(repository.get_product, user['id'], product_id)
    if not product:
        raise HTTPException(status_code=404, detail='Product not found')
    return {"status": "success", "data": product}


@router.post('/products', status_code=201, tags=["Products"])
async def create_product(payload: ProductCreate, user: Dict = Depends(require_editor)):
    created = await run_in_threadpool(repository.create_product, user['id'], payload.model_dump())
    if not created:
        raise HTTPException(status_code=500, detail='Failed to create product')
    return {"status": "success", "data": created}


@router.put('/products/{product_id}', tags=["Products"])
async def update_product(product_id: str, changes: ProductUpdate, user: Dict = Depends(require_editor)):
    rec = changes.model_dump(exclude_unset=True)
    if not rec:
        raise HTTPException(status_code=400, detail='No changes provided')
    existing = await run_in_threadpool(repository.get_product, user['id'], product_id)
    if not existing:
        raise HTTPException(status_code=404, detail='Product not found')
    updated = await run_in_threadpool(repository.update_product, user['id'], product_id, rec)
    if not updated:
        raise HTTPException(status_code=500, detail='Failed to update product')
    return {"status": "success", "data": updated}


@router.delete('/products/{product_id}', tags=["Products"])
async def remove_product(product_id: str, user: Dict = Depends(require_editor)):
    existing = await run_in_threadpool(repository.get_product, user['id'], product_id)
    if not existing:
        raise HTTPException(status_code=404, detail='Product not found')
    # products still used on document lines are archived rather than removed
    res = await run_in_threadpool(repository.delete_product, user['id'], product_id)
    if res is None:
        raise HTTPException(status_code=500, detail='Failed to delete product')
    return {"status": "success", "deleted": res}


# ---------------------------------------------------------------------------
# documents
# ---------------------------------------------------------------------------

def _item_rows(items: List[Dict], totals: Dict) -> List[Dict]:
    rows = []
    for it, lt in zip(items, totals['lines']):
        rows.append({
            'product_id': it.get('product_id'),
            'description': it['description'],
            'quantity': it['quantity'],
            'unit_price': it['unit_price'],
            'includes_vat': bool(it.get('includes_vat')),
            'total': lt,
        })
    return rows


def _totals_record(totals: Dict) -> Dict:
    return {
        'subtotal': totals['subtotal'],
        'vat_rate': totals['vat_rate'],
        'vat_amount': totals['vat_amount'],
        'total': totals['total'],
    }


async def _check_client(user_id: str, client_id: str) -> Dict:
    client = await run_in_threadpool(repository.get_client, user_id, client_id)
    if not client:
        raise HTTPException(status_code=404, detail='Client not found')
    return client


async def _check_products(user_id: str, items: List[Dict]):
    wanted = {it['product_id'] for it in items if it.get('product_id')}
    if not wanted:
        return
    found = await run_in_threadpool(repository.get_products_by_ids, user_id, wanted)
    missing = wanted - set(found)
    if missing:
        raise HTTPException(status_code=400, detail=f'Unknown product {sorted(missing)[0]}')


@router.get('/documents', tags=["Documents"])
async def list_documents(
    search: Optional[str] = None,
    type: Optional[DocumentType] = None,
    status: Optional[DocumentStatus] = None,
    client_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 20,
    user: Dict = Depends(get_current_user),
):
    _check_paging(page, limit)
    res = await run_in_threadpool(
        repository.list_documents,
        user['id'],
        search,
        type.value if type else None,
        status.value if status else None,
        client_id,
        start_date,
        end_date,
        page,
        limit,
    )
    if res is None:
        raise HTTPException(status_code=500, detail='Failed to get documents')
    return {"status": "success", "data": res['rows'], "pagination": _pagination(res['total'], page, limit)}


@router.get('/documents/next-number/{doc_type}', tags=["Documents"])
async def next_document_number(doc_type: DocumentType, user: Dict = Depends(get_current_user)):
    number = await run_in_threadpool(repository.next_document_number, user['id'], doc_type.value)
    if number is None:
        raise HTTPException(status_code=500, detail='Failed to get next number')
    return {"status": "success", "data": {'next_number': number}}


@router.get('/documents/{document_id}', tags=["Documents"])
async def get_document(document_id: str, user: Dict = Depends(get_current_user)):
    document = await run_in_threadpool(repository.get_document, user['id'], document_id, True)
    if not document:
        raise HTTPException(status_code=404, detail='Document not found')
    return {"status": "success", "data": document}


@router.post('/documents', status_code=201, tags=["Documents"])
async def create_document(payload: DocumentCreate, user: Dict = Depends(require_editor)):
    try:
        client = await _check_client(user['id'], payload.client_id)
        items = [it.model_dump() for it in payload.items]
        await _check_products(user['id'], items)

        vat_rate = resolve_vat_rate(payload.vat_rate, None, user.get('vat_rate'), config.DEFAULT_VAT_RATE)
        totals = calculate_document_totals(items, vat_rate, payload.type.value)

        record = {
            'client_id': payload.client_id,
            'type': payload.type.value,
            'status': payload.status.value,
            'issue_date': payload.issue_date or _today(),
            'due_date': payload.due_date,
            'notes': payload.notes,
            **_totals_record(totals),
        }
        created = await run_in_threadpool(repository.create_document, user['id'], record, _item_rows(items, totals))
        if not created:
            raise HTTPException(status_code=500, detail='Failed to create document')
        created['client'] = client
        logging.info('Created %s #%s for user %s', created.get('type'), created.get('document_number'), user['id'])
        return {"status": "success", "data": created}
    except HTTPException:
        raise
    except Exception as exc:
        logging.exception('create_document route exception: %s', exc)
        raise HTTPException(status_code=500, detail='Failed to create document')


@router.put('/documents/{document_id}', tags=["Documents"])
async def update_document(document_id: str, payload: DocumentUpdate, user: Dict = Depends(require_editor)):
    try:
        existing = await run_in_threadpool(repository.get_document, user['id'], document_id)
        if not existing:
            raise HTTPException(status_code=404, detail='Document not found')

        sent = payload.model_fields_set
        client_id = payload.client_id if 'client_id' in sent and payload.client_id else existing.get('client_id')
        client = await _check_client(user['id'], client_id)

        items = [it.model_dump() for it in payload.items]
        await _check_products(user['id'], items)

        # the document type and number never change
        vat_rate = resolve_vat_rate(payload.vat_rate, existing.get('vat_rate'), user.get('vat_rate'), config.DEFAULT_VAT_RATE)
        totals = calculate_document_totals(items, vat_rate, existing.get('type'))

        changes = {'client_id': client_id, **_totals_record(totals)}
        if payload.status is not None:
            changes['status'] = payload.status.value
        if payload.issue_date is not None:
            changes['issue_date'] = payload.issue_date
        # due date and notes may be cleared explicitly with null
        if 'due_date' in sent:
            changes['due_date'] = payload.due_date
        if 'notes' in sent:
            changes['notes'] = payload.notes

        updated = await run_in_threadpool(repository.update_document, user['id'], document_id, changes, _item_rows(items, totals))
        if not updated:
            raise HTTPException(status_code=500, detail='Failed to update document')
        updated['client'] = client
        return {"status": "success", "data": updated}
    except HTTPException:
        raise
    except Exception as exc:
        logging.exception('update_document route exception: %s', exc)
        raise HTTPException(status_code=500, detail='Failed to update document')


@router.patch('/documents/{document_id}/status', tags=["Documents"])
async def update_document_status(document_id: str, payload: StatusUpdate, user: Dict = Depends(require_editor)):
    existing = await run_in_threadpool(repository.get_document, user['id'], document_id)
    if not existing:
        raise HTTPException(status_code=404, detail='Document not found')
    updated = await run_in_threadpool(repository.update_document, user['id'], document_id, {'status': payload.status.value})
    if not updated:
        raise HTTPException(status_code=500, detail='Failed to update status')
    return {"status": "success", "data": updated}


@router.delete('/documents/{document_id}', tags=["Documents"])
async def remove_document(document_id: str, user: Dict = Depends(require_editor)):
    existing = await run_in_threadpool(repository.get_document, user['id'], document_id)
    if not existing:
        raise HTTPException(status_code=404, detail='Document not found')
    ok = await run_in_threadpool(repository.delete_document, user['id'], document_id)
    if not ok:
        raise HTTPException(status_code=500, detail='Failed to delete document')
    return {"status": "success"}


@router.get('/documents/{document_id}/pdf', tags=["Documents"])
async def document_pdf(document_id: str, user: Dict = Depends(get_current_user)):
    document = await run_in_threadpool(repository.get_document, user['id'], document_id, True)
    if not document:
        raise HTTPException(status_code=404, detail='Document not found')

    pdf_bytes = await run_in_threadpool(pdf_module.document_to_pdf_bytes, document)
    if pdf_bytes:
        headers = {'Content-Disposition': f'attachment; filename={pdf_module.document_filename(document)}'}
        return Response(content=pdf_bytes, media_type='application/pdf', headers=headers)

    # Fallback: return HTML rendering
    html = await run_in_threadpool(pdf_module.render_document_html, document)
    return HTMLResponse(content=html)


@router.post('/documents/{document_id}/convert', status_code=201, tags=["Documents"])
async def convert_quote(document_id: str, user: Dict = Depends(require_editor)):
    try:
        quote = await run_in_threadpool(repository.get_document, user['id'], document_id)
        if not quote or quote.get('type') != DocumentType.QUOTE.value:
            raise HTTPException(status_code=404, detail='Quote not found')
        if quote.get('status') == DocumentStatus.CANCELLED.value:
            raise HTTPException(status_code=409, detail='Quote is cancelled or already converted')

        items = [
            {
                'product_id': it.get('product_id'),
                'description': it.get('description'),
                'quantity': it.get('quantity'),
                'unit_price': it.get('unit_price'),
                'includes_vat': it.get('includes_vat'),
            }
            for it in quote.get('items') or []
        ]
        # quotes carry no VAT, so the invoice totals are computed afresh with the quote's rate
        vat_rate = resolve_vat_rate(None, quote.get('vat_rate'), user.get('vat_rate'), config.DEFAULT_VAT_RATE)
        totals = calculate_document_totals(items, vat_rate, DocumentType.INVOICE.value)

        record = {
            'client_id': quote.get('client_id'),
            'type': DocumentType.INVOICE.value,
            'status': DocumentStatus.DRAFT.value,
            'issue_date': _today(),
            'due_date': None,
            'notes': quote.get('notes'),
            **_totals_record(totals),
        }
        invoice = await run_in_threadpool(repository.create_document, user['id'], record, _item_rows(items, totals))
        if not invoice:
            raise HTTPException(status_code=500, detail='Failed to convert quote')

        cancelled = await run_in_threadpool(
            repository.update_document, user['id'], document_id, {'status': DocumentStatus.CANCELLED.value}
        )
        if not cancelled:
            logging.warning('Invoice %s created from quote %s but the quote could not be cancelled', invoice.get('id'), document_id)
        invoice['client'] = quote.get('client')
        return {"status": "success", "data": invoice}
    except HTTPException:
        raise
    except Exception as exc:
        logging.exception('convert_quote route exception: %s', exc)
        raise HTTPException(status_code=500, detail='Failed to convert quote')


# ---------------------------------------------------------------------------
# reports
# ---------------------------------------------------------------------------

@router.get('/reports/dashboard', tags=["Reports"])
async def dashboard(user: Dict = Depends(get_current_user)):
    today = _today()
    uid = user['id']
    documents = await run_in_threadpool(
        repository.list_billed_documents,
        uid,
        reports_module.REVENUE_TYPES,
        reports_module.BILLED_STATUSES,
        reports_module.dashboard_window_start(today),
        None,
        None,
    )
    client_count = await run_in_threadpool(repository.count_clients, uid)
    product_count = await run_in_threadpool(repository.count_products, uid)
    pending = await run_in_threadpool(
        repository.count_documents, uid, reports_module.REVENUE_TYPES, reports_module.PENDING_STATUS
    )
    recent = await run_in_threadpool(repository.list_recent_documents, uid, 5)
    if documents is None or None in (client_count, product_count, pending) or recent is None:
        raise HTTPException(status_code=500, detail='Failed to get dashboard data')
    data = reports_module.dashboard(documents, today, client_count, product_count, pending, recent)
    return {"status": "success", "data": data}


@router.get('/reports/vat', tags=["Reports"])
async def vat_report(
    period: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user: Dict = Depends(get_current_user),
):
    start, end = reports_module.resolve_vat_period(period, start_date, end_date, _today())
    documents = await run_in_threadpool(
        repository.list_billed_documents,
        user['id'],
        reports_module.VAT_TYPES,
        reports_module.BILLED_STATUSES,
        start,
        end,
        'name, business_id',
    )
    if documents is None:
        raise HTTPException(status_code=500, detail='Failed to generate VAT report')
    return {"status": "success", "data": reports_module.vat_report(documents, start, end)}


@router.get('/reports/income', tags=["Reports"])
async def income_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    group_by: str = 'month',
    user: Dict = Depends(get_current_user),
):
    if group_by not in reports_module.GROUP_BY_CHOICES:
        raise HTTPException(status_code=400, detail='group_by must be one of day, week, month')
    today = _today()
    start = start_date or date(today.year, 1, 1)
    end = end_date or today
    documents = await run_in_threadpool(
        repository.list_billed_documents,
        user['id'],
        reports_module.REVENUE_TYPES,
        reports_module.BILLED_STATUSES,
        start,
        end,
    )
    if documents is None:
        raise HTTPException(status_code=500, detail='Failed to generate income report')
    return {"status": "success", "data": reports_module.income_report(documents, start, end, group_by)}


@router.get('/reports/clients', tags=["Reports"])
async def client_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user: Dict = Depends(get_current_user),
):
    today = _today()
    start = start_date or date(today.year, 1, 1)
    end = end_date or today
    clients = await run_in_threadpool(repository.list_all_clients, user['id'])
    documents = await run_in_threadpool(
        repository.list_billed_documents,
        user['id'],
        reports_module.REVENUE_TYPES,
        reports_module.BILLED_STATUSES,
        start,
        end,
        None,
    )
    if clients is None or documents is None:
        raise HTTPException(status_code=500, detail='Failed to generate client report')
    data = {'period': {'start': start, 'end': end}, 'clients': reports_module.client_revenue(clients, documents)}
    return {"status": "success", "data": data}
