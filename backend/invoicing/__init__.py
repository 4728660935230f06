"""Backend package for the invoicing API."""

# Expose package modules for easier imports
__all__ = [
    'auth',
    'config',
    'database',
    'main',
    'pdf',
    'reports',
    'repository',
    'routes',
    'schemas',
    'totals',
]
