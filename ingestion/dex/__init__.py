"""
ingestion/dex package

DEX integration (Jupiter quotes, token metadata).
"""
from .jupiter import JupiterClient
from .models import ErrorResponse, QuoteResponse, RouteStep, Token
from .tokens import TokenRegistry

__all__ = [
    'JupiterClient',
    'QuoteResponse',
    'RouteStep',
    'Token',
    'TokenRegistry',
    'ErrorResponse',
]
