"""
Credit Services

Prepaid credit ledger and the per-field paywall it backs:
- CreditLedgerService: append-only ledger, derived balance
- FieldDisclosureGate: charge-once disclosure grants
- PricingService: per-field disclosure cost
"""

from .ledger import CreditLedgerService
from .disclosure import FieldDisclosureGate, DisclosureResult
from .pricing import PricingService, DISCLOSABLE_FIELDS, validate_field_key

__all__ = [
    'CreditLedgerService',
    'FieldDisclosureGate',
    'DisclosureResult',
    'PricingService',
    'DISCLOSABLE_FIELDS',
    'validate_field_key',
]
