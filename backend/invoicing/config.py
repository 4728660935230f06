import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv('SUPABASE_URL')
SUPABASE_KEY = os.getenv('SUPABASE_KEY')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# VAT applied when neither the request nor the business profile carries a rate
DEFAULT_VAT_RATE = Decimal(os.getenv('DEFAULT_VAT_RATE', '17'))
CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '₪')

# insert attempts before giving up when two writers race for the same number
DOCUMENT_NUMBER_ATTEMPTS = int(os.getenv('DOCUMENT_NUMBER_ATTEMPTS', '5'))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',')
    if origin.strip()
]
