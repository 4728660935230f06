from typing import Optional, Dict, List, Iterable
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
import logging

from . import config


def _get_supabase():
    # lazy import so tests never need SUPABASE_URL / SUPABASE_KEY
    from .database import supabase
    return supabase


def _to_row(record: Dict) -> Dict:
    """Make a record safe to POST to PostgREST: Decimals to floats, dates to ISO strings."""
    out = {}
    for k, v in record.items():
        if isinstance(v, Decimal):
            out[k] = float(v)
        elif isinstance(v, (date, datetime)):
            out[k] = v.isoformat()
        elif isinstance(v, Enum):
            out[k] = v.value
        else:
            out[k] = v
    return out


def _first(data) -> Optional[Dict]:
    if isinstance(data, list):
        return data[0] if data else None
    return data


# document_number is an int4 column
INT4_MAX = 2147483647


def _search_term(search: Optional[str]) -> str:
    # commas, parentheses and wildcards would break the PostgREST or() filter syntax
    if not search:
        return ''
    return ''.join(ch for ch in search if ch not in ',()%*').strip()


def _page_range(page: int, limit: int):
    page = max(int(page or 1), 1)
    limit = max(int(limit or 1), 1)
    start = (page - 1) * limit
    return start, start + limit - 1


def _is_unique_violation(err) -> bool:
    msg = str(err)
    return '23505' in msg or 'duplicate key' in msg.lower()


def _is_fk_violation(err) -> bool:
    msg = str(err)
    return '23503' in msg or 'foreign key constraint' in msg or 'is still referenced' in msg


# ---------------------------------------------------------------------------
# auth
# ---------------------------------------------------------------------------

def sign_up(email: str, password: str) -> Optional[Dict]:
    """Create a Supabase Auth user. Returns { user_id, access_token } or None."""
    try:
        supabase = _get_supabase()
        res = supabase.auth.sign_up({'email': email, 'password': password})
    except Exception as exc:
        logging.exception('Supabase sign_up exception: %s', exc)
        return None
    user = getattr(res, 'user', None)
    if not user:
        logging.error('Supabase sign_up returned no user for %s', email)
        return None
    session = getattr(res, 'session', None)
    # session is None when the project requires e-mail confirmation
    return {'user_id': user.id, 'access_token': session.access_token if session else None}


def sign_in(email: str, password: str) -> Optional[Dict]:
    try:
        supabase = _get_supabase()
        res = supabase.auth.sign_in_with_password({'email': email, 'password': password})
    except Exception as exc:
        logging.info('Supabase sign_in rejected for %s: %s', email, exc)
        return None
    user = getattr(res, 'user', None)
    session = getattr(res, 'session', None)
    if not user or not session:
        return None
    return {'user_id': user.id, 'access_token': session.access_token}


def get_token_user_id(token: str) -> Optional[str]:
    """Resolve an access token to the auth user id, or None when the token is rejected."""
    try:
        supabase = _get_supabase()
        res = supabase.auth.get_user(token)
    except Exception as exc:
        logging.info('Supabase get_user rejected token: %s', exc)
        return None
    user = getattr(res, 'user', None) if res else None
    return user.id if user else None


# ---------------------------------------------------------------------------
# profiles
# ---------------------------------------------------------------------------

PROFILE_FIELDS = 'id, email, business_name, business_id, address, phone, role, logo, vat_rate'


def get_profile(user_id: str) -> Optional[Dict]:
    try:
        supabase = _get_supabase()
        res = supabase.table('profiles').select(PROFILE_FIELDS).eq('id', user_id).limit(1).execute()
    except Exception as exc:
        logging.exception('Supabase get_profile exception: %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase get_profile error: %s', res.error)
        return None
    return _first(res.data)


def get_profile_by_email(email: str) -> Optional[Dict]:
    try:
        supabase = _get_supabase()
        res = supabase.table('profiles').select(PROFILE_FIELDS).eq('email', email).limit(1).execute()
    except Exception as exc:
        logging.exception('Supabase get_profile_by_email exception: %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase get_profile_by_email error: %s', res.error)
        return None
    return _first(res.data)


def create_profile(record: Dict) -> Optional[Dict]:
    try:
        supabase = _get_supabase()
        res = supabase.table('profiles').insert(_to_row(record)).execute()
    except Exception as exc:
        logging.exception('Supabase create_profile exception: %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase create_profile error: %s', res.error)
        return None
    return _first(res.data)


def update_profile(user_id: str, changes: Dict) -> Optional[Dict]:
    try:
        supabase = _get_supabase()
        res = supabase.table('profiles').update(_to_row(changes)).eq('id', user_id).execute()
    except Exception as exc:
        logging.exception('Supabase update_profile exception: %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase update_profile error: %s', res.error)
        return None
    row = _first(res.data)
    if row is None:
        return None
    return {k: row.get(k) for k in PROFILE_FIELDS.split(', ')}


# ---------------------------------------------------------------------------
# clients
# ---------------------------------------------------------------------------

def list_clients(user_id: str, search: Optional[str] = None, page: int = 1, limit: int = 20) -> Optional[Dict]:
    """Return { rows, total } for one page of the user's clients, newest first."""
    try:
        supabase = _get_supabase()
        qb = supabase.table('clients').select('*', count='exact').eq('user_id', user_id)
        term = _search_term(search)
        if term:
            qb = qb.or_(
                f'name.ilike.%{term}%,email.ilike.%{term}%,phone.ilike.%{term}%,business_id.ilike.%{term}%'
            )
        start, end = _page_range(page, limit)
        res = qb.order('created_at', desc=True).range(start, end).execute()
        if getattr(res, 'error', None):
            logging.error('Supabase list_clients error: %s', res.error)
            return None
        rows = res.data or []
        total = res.count if res.count is not None else len(rows)
        return {'rows': rows, 'total': total}
    except Exception as exc:
        logging.exception('list_clients exception: %s', exc)
        return None


def list_all_clients(user_id: str) -> Optional[List[Dict]]:
    try:
        supabase = _get_supabase()
        res = supabase.table('clients').select('id, name, business_id').eq('user_id', user_id).execute()
        if getattr(res, 'error', None):
            logging.error('Supabase list_all_clients error: %s', res.error)
            return None
        return res.data or []
    except Exception as exc:
        logging.exception('list_all_clients exception: %s', exc)
        return None


def get_client(user_id: str, client_id: str) -> Optional[Dict]:
    try:
        supabase = _get_supabase()
        res = supabase.table('clients').select('*').eq('id', client_id).eq('user_id', user_id).limit(1).execute()
    except Exception as exc:
        # postgrest raises on malformed ids; treat as not found
        logging.debug('Supabase get_client exception (treated as not found): %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase get_client error: %s', res.error)
        return None
    return _first(res.data)


def get_clients_by_ids(user_id: str, client_ids: Iterable[str], fields: str = '*') -> Dict[str, Dict]:
    ids = sorted({cid for cid in client_ids if cid})
    if not ids:
        return {}
    try:
        supabase = _get_supabase()
        if fields != '*' and 'id' not in [f.strip() for f in fields.split(',')]:
            fields = 'id, ' + fields
        res = supabase.table('clients').select(fields).eq('user_id', user_id).in_('id', ids).execute()
        if getattr(res, 'error', None):
            logging.error('Supabase get_clients_by_ids error: %s', res.error)
            return {}
        return {row['id']: row for row in (res.data or [])}
    except Exception as exc:
        logging.exception('get_clients_by_ids exception: %s', exc)
        return {}


def create_client(user_id: str, record: Dict) -> Optional[Dict]:
    try:
        supabase = _get_supabase()
        rec = dict(record)
        rec['user_id'] = user_id
        res = supabase.table('clients').insert(_to_row(rec)).execute()
    except Exception as exc:
        logging.exception('Supabase create_client exception: %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase create_client error: %s', res.error)
        return None
    return _first(res.data)


def update_client(user_id: str, client_id: str, changes: Dict) -> Optional[Dict]:
    try:
        supabase = _get_supabase()
        res = supabase.table('clients').update(_to_row(changes)).eq('id', client_id).eq('user_id', user_id).execute()
    except Exception as exc:
        logging.exception('Supabase update_client exception: %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase update_client error: %s', res.error)
        return None
    return _first(res.data)


def delete_client(user_id: str, client_id: str) -> Optional[str]:
    """Delete a client. Returns 'deleted', 'in_use' when documents still reference it, or None on error."""
    try:
        supabase = _get_supabase()
        res = supabase.table('clients').delete().eq('id', client_id).eq('user_id', user_id).execute()
    except Exception as exc:
        if _is_fk_violation(exc):
            logging.info('Client %s is still referenced by documents; not deleting', client_id)
            return 'in_use'
        logging.exception('Supabase delete_client exception: %s', exc)
        return None
    if getattr(res, 'error', None):
        if _is_fk_violation(res.error):
            return 'in_use'
        logging.error('Supabase delete_client error: %s', res.error)
        return None
    return 'deleted'


def count_clients(user_id: str) -> Optional[int]:
    return _count('clients', user_id)


def _count(table: str, user_id: str, **filters) -> Optional[int]:
    try:
        supabase = _get_supabase()
        qb = supabase.table(table).select('id', count='exact').eq('user_id', user_id)
        for column, value in filters.items():
            if isinstance(value, (list, tuple)):
                qb = qb.in_(column, list(value))
            else:
                qb = qb.eq(column, value)
        res = qb.execute()
        if getattr(res, 'error', None):
            logging.error('Supabase count %s error: %s', table, res.error)
            return None
        return res.count if res.count is not None else len(res.data or [])
    except Exception as exc:
        logging.exception('count %s exception: %s', table, exc)
        return None


# ---------------------------------------------------------------------------
# products
# ---------------------------------------------------------------------------

def list_products(user_id: str, search: Optional[str] = None, page: int = 1, limit: int = 50) -> Optional[Dict]:
    """Return { rows, total } for one page of active products ordered by name."""
    try:
        supabase = _get_supabase()
        qb = supabase.table('products').select('*', count='exact').eq('user_id', user_id).eq('archived', False)
        term = _search_term(search)
        if term:
            qb = qb.or_(f'name.ilike.%{term}%,description.ilike.%{term}%')
        start, end = _page_range(page, limit)
        res = qb.order('name').range(start, end).execute()
        if getattr(res, 'error', None):
            logging.error('Supabase list_products error: %s', res.error)
            return None
        rows = res.data or []
        total = res.count if res.count is not None else len(rows)
        return {'rows': rows, 'total': total}
    except Exception as exc:
        logging.exception('list_products exception: %s', exc)
        return None


def get_product(user_id: str, product_id: str) -> Optional[Dict]:
    """Return product row dict or None"""
    try:
        supabase = _get_supabase()
        res = supabase.table('products').select('*').eq('id', product_id).eq('user_id', user_id).limit(1).execute()
    except Exception as exc:
        logging.debug('Supabase get_product exception (treated as not found): %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase get_product error: %s', res.error)
        return None
    return _first(res.data)


def get_products_by_ids(user_id: str, product_ids: Iterable[str]) -> Dict[str, Dict]:
    ids = sorted({pid for pid in product_ids if pid})
    if not ids:
        return {}
    try:
        supabase = _get_supabase()
        res = supabase.table('products').select('*').eq('user_id', user_id).in_('id', ids).execute()
        if getattr(res, 'error', None):
            logging.error('Supabase get_products_by_ids error: %s', res.error)
            return {}
        return {row['id']: row for row in (res.data or [])}
    except Exception as exc:
        logging.exception('get_products_by_ids exception: %s', exc)
        return {}


def create_product(user_id: str, record: Dict) -> Optional[Dict]:
    try:
        supabase = _get_supabase()
        rec = dict(record)
        rec['user_id'] = user_id
        res = supabase.table('products').insert(_to_row(rec)).execute()
    except Exception as exc:
        logging.exception('Supabase create_product exception: %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase create_product error: %s', res.error)
        return None
    return _first(res.data)


def update_product(user_id: str, product_id: str, changes: Dict) -> Optional[Dict]:
    try:
        supabase = _get_supabase()
        res = supabase.table('products').update(_to_row(changes)).eq('id', product_id).eq('user_id', user_id).execute()
    except Exception as exc:
        logging.exception('Supabase update_product exception: %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase update_product error: %s', res.error)
        return None
    return _first(res.data)


def delete_product(user_id: str, product_id: str) -> Optional[str]:
    """Delete a product row.

    Returns 'hard' when the row is gone, 'soft' when document items still reference it
    and it was archived instead, or None on failure.
    """
    supabase = _get_supabase()
    try:
        res = supabase.table('products').delete().eq('id', product_id).eq('user_id', user_id).execute()
        if getattr(res, 'error', None):
            if not _is_fk_violation(res.error):
                logging.error('Supabase delete_product error: %s', res.error)
                return None
        else:
            return 'hard'
    except Exception as exc:
        if not _is_fk_violation(exc):
            logging.exception('Supabase delete_product exception: %s', exc)
            return None

    logging.info('Detected FK constraint preventing product deletion; archiving %s', product_id)
    try:
        upd = supabase.table('products').update({'archived': True}).eq('id', product_id).eq('user_id', user_id).execute()
    except Exception as exc:
        logging.exception('Archive fallback failed for product %s: %s', product_id, exc)
        return None
    if getattr(upd, 'error', None):
        logging.error('Failed to archive product %s: %s', product_id, upd.error)
        return None
    return 'soft'


def count_products(user_id: str) -> Optional[int]:
    return _count('products', user_id, archived=False)


# ---------------------------------------------------------------------------
# documents
# ---------------------------------------------------------------------------

def next_document_number(user_id: str, doc_type: str) -> Optional[int]:
    """Highest document_number of this type for the user plus one; 1 for the first document."""
    try:
        supabase = _get_supabase()
        res = (
            supabase.table('documents')
            .select('document_number')
            .eq('user_id', user_id)
            .eq('type', doc_type)
            # Postgres sorts NULLs first in descending order; skip rows still awaiting a backfill
            .not_.is_('document_number', 'null')
            .order('document_number', desc=True)
            .limit(1)
            .execute()
        )
        if getattr(res, 'error', None):
            logging.error('Supabase next_document_number error: %s', res.error)
            return None
        last = _first(res.data)
        last_number = int(last.get('document_number') or 0) if last else 0
        return last_number + 1
    except Exception as exc:
        logging.exception('next_document_number exception: %s', exc)
        return None


def insert_document_items(document_id: str, items: List[Dict]) -> Optional[List[Dict]]:
    """Insert the items of a document. Returns the inserted rows or None on error."""
    if not items:
        return []
    rows = []
    for it in items:
        row = _to_row(it)
        row['document_id'] = document_id
        rows.append(row)
    try:
        supabase = _get_supabase()
        res = supabase.table('document_items').insert(rows).execute()
    except Exception as exc:
        logging.exception('Supabase insert_document_items exception: %s', exc)
        return None
    if getattr(res, 'error', None):
        logging.error('Supabase insert_document_items error: %s', res.error)
        return None
    return res.data or []


def delete_document_items(document_id: str) -> bool:
    try:
        supabase = _get_supabase()
        res = supabase.table('document_items').delete().eq('document_id', document_id).execute()
    except Exception as exc:
        logging.exception('Supabase delete_document_items exception: %s', exc)
        return False
    if getattr(res, 'error', None):
        logging.error('Supabase delete_document_items error: %s', res.error)
        return False
    return True


def create_document(user_id: str, record: Dict, items: List[Dict]) -> Optional[Dict]:
    """
    Assign the next number for record['type'], insert the document and its items.

    Two writers may compute the same number; the (user_id, type, document_number) unique
    constraint rejects the second insert, which then recomputes and retries.
    """
    supabase = _get_supabase()
    for attempt in range(config.DOCUMENT_NUMBER_ATTEMPTS):
        number = next_document_number(user_id, _to_row(record)['type'])
        if number is None:
            return None
        row = _to_row(record)
        row['user_id'] = user_id
        row['document_number'] = number
        try:
            res = supabase.table('documents').insert(row).execute()
        except Exception as exc:
            if _is_unique_violation(exc):
                logging.warning('Document number %s already taken (attempt %s); retrying', number, attempt + 1)
                continue
            logging.exception('Supabase create_document exception: %s', exc)
            return None
        if getattr(res, 'error', None):
            if _is_unique_violation(res.error):
                logging.warning('Document number %s already taken (attempt %s); retrying', number, attempt + 1)
                continue
            logging.error('Supabase create_document error: %s', res.error)
            return None

        created = _first(res.data)
        if not created:
            return None
        inserted = insert_document_items(created['id'], items)
        if inserted is None:
            # without items the totals are meaningless; remove the header again
            logging.error('Failed to insert items for document %s; removing it', created['id'])
            delete_document(user_id, created['id'])
            return None
        created['items'] = inserted
        return created

    logging.error('Failed to create document after %s attempts due to number conflicts', config.DOCUMENT_NUMBER_ATTEMPTS)
    return None


def _attach_items(documents: List[Dict]) -> None:
    ids = [d['id'] for d in documents]
    by_doc = {doc_id: [] for doc_id in ids}
    if ids:
        supabase = _get_supabase()
        res = supabase.table('document_items').select('*').in_('document_id', ids).execute()
        if getattr(res, 'error', None):
            logging.error('Supabase document_items error: %s', res.error)
        for it in (res.data or []):
            by_doc.setdefault(it['document_id'], []).append(it)
    for d in documents:
        d['items'] = by_doc.get(d['id'], [])


def _attach_clients(user_id: str, documents: List[Dict], fields: str = 'name, email') -> None:
    clients = get_clients_by_ids(user_id, (d.get('client_id') for d in documents), fields)
    for d in documents:
        client = clients.get(d.get('client_id'))
        if client is not None and fields != '*':
            client = {k: v for k, v in client.items() if k != 'id'}
        d['client'] = client


def get_document(user_id: str, document_id: str, detailed: bool = False) -> Optional[Dict]:
    """Fetch a document with its items and client.

    detailed=True also resolves each item's product and the issuing business profile.
    """
    try:
        supabase = _get_supabase()
        res = supabase.table('documents').select('*').eq('id', document_id).eq('user_id', user_id).limit(1).execute()
        if getattr(res, 'error', None):
            logging.error('Supabase get_document error: %s', res.error)
            return None
        document = _first(res.data)
        if not document:
            logging.info('Document not found: %s', document_id)
            return None
        _attach_items([document])
        if not detailed:
            _attach_clients(user_id, [document])
            return document

        document['client'] = get_client(user_id, document.get('client_id')) if document.get('client_id') else None
        products = get_products_by_ids(user_id, (it.get('product_id') for it in document['items']))
        for it in document['items']:
            it['product'] = products.get(it.get('product_id'))
        profile = get_profile(user_id) or {}
        document['user'] = {
            k: profile.get(k) for k in ('business_name', 'business_id', 'address', 'phone', 'email', 'logo')
        }
        return document
    except Exception as exc:
        logging.exception('get_document exception: %s', exc)
        return None


def list_documents(
    user_id: str,
    search: Optional[str] = None,
    doc_type: Optional[str] = None,
    status: Optional[str] = None,
    client_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 20,
) -> Optional[Dict]:
    """Return { rows, total } for one page of documents, newest first, with client and items."""
    try:
        supabase = _get_supabase()
        qb = supabase.table('documents').select('*', count='exact').eq('user_id', user_id)
        if doc_type:
            qb = qb.eq('type', doc_type)
        if status:
            qb = qb.eq('status', status)
        if client_id:
            qb = qb.eq('client_id', client_id)
        if start_date:
            qb = qb.gte('issue_date', start_date.isoformat())
        if end_date:
            qb = qb.lte('issue_date', end_date.isoformat())

        term = _search_term(search)
        if term:
            clauses = [f'notes.ilike.%{term}%']
            if term.isdecimal() and int(term) <= INT4_MAX:
                clauses.append(f'document_number.eq.{int(term)}')
            matched = (
                supabase.table('clients').select('id').eq('user_id', user_id).ilike('name', f'%{term}%').execute()
            )
            client_ids = [c['id'] for c in (matched.data or [])]
            if client_ids:
                clauses.append(f"client_id.in.({','.join(client_ids)})")
            qb = qb.or_(','.join(clauses))

        start, end = _page_range(page, limit)
        res = qb.order('created_at', desc=True).range(start, end).execute()
        if getattr(res, 'error', None):
            logging.error('Supabase list_documents error: %s', res.error)
            return None
        rows = res.data or []
        _attach_clients(user_id, rows)
        _attach_items(rows)
        total = res.count if res.count is not None else len(rows)
        return {'rows': rows, 'total': total}
    except Exception as exc:
        logging.exception('list_documents exception: %s', exc)
        return None


def _restore_document(user_id: str, previous: Dict, old_items: List[Dict], changed: Iterable[str]) -> None:
    """Put back the header columns in changed and the items a failed replacement removed."""
    document_id = previous['id']
    try:
        supabase = _get_supabase()
        header = {k: previous.get(k) for k in changed}
        supabase.table('documents').update(header).eq('id', document_id).eq('user_id', user_id).execute()
    except Exception as exc:
        logging.exception('Failed to restore document %s header: %s', document_id, exc)
    if not delete_document_items(document_id) or insert_document_items(document_id, old_items) is None:
        logging.error('Failed to restore the items of document %s', document_id)


def update_document(user_id: str, document_id: str, changes: Dict, items: Optional[List[Dict]] = None) -> Optional[Dict]:
    """Update document columns; when items is given the existing items are replaced.

    A replacement that fails halfway puts the previous header values and items back.
    """
    previous = None
    old_items: List[Dict] = []
    removed = False
    try:
        supabase = _get_supabase()
        if items is not None:
            found = supabase.table('documents').select('*').eq('id', document_id).eq('user_id', user_id).limit(1).execute()
            previous = _first(found.data)
            if not previous:
                return None
            old_items = supabase.table('document_items').select('*').eq('document_id', document_id).execute().data or []
            if not delete_document_items(document_id):
                return None
            removed = True

        res = supabase.table('documents').update(_to_row(changes)).eq('id', document_id).eq('user_id', user_id).execute()
        updated = None if getattr(res, 'error', None) else _first(res.data)
        if not updated:
            logging.error('Supabase update_document error for %s: %s', document_id, getattr(res, 'error', None))
        elif items is not None:
            inserted = insert_document_items(document_id, items)
            if inserted is None:
                logging.error('Items of document %s could not be stored; restoring previous version', document_id)
                updated = None
            else:
                updated['items'] = inserted
    except Exception as exc:
        logging.exception('update_document exception: %s', exc)
        updated = None

    if updated is None and removed:
        _restore_document(user_id, previous, old_items, changes)
    return updated


def delete_document(user_id: str, document_id: str) -> bool:
    try:
        supabase = _get_supabase()
        if not delete_document_items(document_id):
            return False
        res = supabase.table('documents').delete().eq('id', document_id).eq('user_id', user_id).execute()
    except Exception as exc:
        logging.exception('Supabase delete_document exception: %s', exc)
        return False
    if getattr(res, 'error', None):
        logging.error('Supabase delete_document error: %s', res.error)
        return False
    return True


def list_billed_documents(
    user_id: str,
    types: Iterable[str],
    statuses: Iterable[str],
    start: Optional[date] = None,
    end: Optional[date] = None,
    client_fields: Optional[str] = 'name',
) -> Optional[List[Dict]]:
    """Documents of the given types and statuses issued within [start, end], oldest first."""
    try:
        supabase = _get_supabase()
        qb = (
            supabase.table('documents')
            .select('*')
            .eq('user_id', user_id)
            .in_('type', list(types))
            .in_('status', list(statuses))
        )
        if start:
            qb = qb.gte('issue_date', start.isoformat())
        if end:
            qb = qb.lte('issue_date', end.isoformat())
        res = qb.order('issue_date').execute()
        if getattr(res, 'error', None):
            logging.error('Supabase list_billed_documents error: %s', res.error)
            return None
        rows = res.data or []
        if client_fields:
            _attach_clients(user_id, rows, client_fields)
        return rows
    except Exception as exc:
        logging.exception('list_billed_documents exception: %s', exc)
        return None


def list_recent_documents(user_id: str, limit: int = 5, client_id: Optional[str] = None) -> Optional[List[Dict]]:
    try:
        supabase = _get_supabase()
        qb = supabase.table('documents').select('*').eq('user_id', user_id)
        if client_id:
            qb = qb.eq('client_id', client_id)
        res = qb.order('created_at', desc=True).limit(int(limit)).execute()
        if getattr(res, 'error', None):
            logging.error('Supabase list_recent_documents error: %s', res.error)
            return None
        rows = res.data or []
        if not client_id:
            _attach_clients(user_id, rows, 'name')
        return rows
    except Exception as exc:
        logging.exception('list_recent_documents exception: %s', exc)
        return None


def count_documents(user_id: str, types: Iterable[str], status: str) -> Optional[int]:
    return _count('documents', user_id, type=list(types), status=status)
