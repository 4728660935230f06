"""Backfill document_number for documents imported without one.

Numbers continue after the highest existing number of the same user and type,
in created_at order.

Usage:
  source .venv/bin/activate
  python -m backend.scripts.backfill_document_numbers

Requires SUPABASE_URL and SUPABASE_KEY in the environment (service role key, so
rows of every user are visible).
"""
import logging
from typing import Dict, List, Tuple

from backend.invoicing import repository


def plan_numbers(numbered: List[Dict], missing: List[Dict]) -> List[Tuple[str, int]]:
    """Return (document id, number) assignments for the rows in missing."""
    last: Dict[Tuple[str, str], int] = {}
    for r in numbered:
        key = (r.get('user_id'), r.get('type'))
        n = int(r.get('document_number') or 0)
        if n > last.get(key, 0):
            last[key] = n

    plan = []
    for r in sorted(missing, key=lambda r: (r.get('created_at') or '', r.get('id'))):
        key = (r.get('user_id'), r.get('type'))
        last[key] = last.get(key, 0) + 1
        plan.append((r['id'], last[key]))
    return plan


def backfill():
    supabase = repository._get_supabase()
    try:
        numbered = supabase.table('documents').select('user_id, type, document_number').not_.is_('document_number', 'null').execute()
        missing = supabase.table('documents').select('id, user_id, type, created_at').is_('document_number', 'null').execute()
    except Exception as exc:
        logging.error('Error fetching documents: %s', exc)
        return

    rows = missing.data or []
    logging.info('Found %s documents without a number', len(rows))

    for doc_id, number in plan_numbers(numbered.data or [], rows):
        try:
            res = supabase.table('documents').update({'document_number': number}).eq('id', doc_id).execute()
        except Exception as exc:
            logging.exception('Failed to update document %s: %s', doc_id, exc)
            continue
        if getattr(res, 'error', None):
            logging.error('Update error for %s: %s', doc_id, res.error)
        else:
            logging.info('Updated %s -> %s', doc_id, number)


def main():
    logging.basicConfig(level=logging.INFO)
    backfill()


if __name__ == '__main__':
    main()
