"""
Module 'commercetools': accès à l'API projet (carts, paiements, commandes, catalogue, types).
"""

from .custom_types import CustomTypeResolver
from .payments import find_transaction, has_transaction_in_state, update_payment

__all__ = [
    "CustomTypeResolver",
    "find_transaction",
    "has_transaction_in_state",
    "update_payment",
]
