import logging

from supabase import create_client, Client

from . import config


if not config.SUPABASE_URL or not config.SUPABASE_KEY:
    logging.error('Missing SUPABASE_URL or SUPABASE_KEY environment variables')
    raise RuntimeError('SUPABASE_URL and SUPABASE_KEY must be set in the environment')

logging.info('Connecting to Supabase at %s', config.SUPABASE_URL)

supabase: Client = create_client(config.SUPABASE_URL, config.SUPABASE_KEY)
