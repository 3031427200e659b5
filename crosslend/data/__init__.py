"""External collaborators of the lending engine: prices and token transfers."""

from crosslend.data.provider_factory import create_price_source, create_token_ledger

__all__ = ["create_price_source", "create_token_ledger"]
