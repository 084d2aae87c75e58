from typing import Dict, Tuple, Type

from .asset import Asset
from .base import SyncModel
from .budget import BudgetCategory
from .category import Category
from .credit_card import CreditCardPurchase
from .recurring import RecurringItem
from .settings import AppSettings
from .transaction import Transaction

# Nome da coleção -> Classe do Modelo, na ordem do sync.
# As coleções são independentes entre si (sem chaves estrangeiras).
COLLECTION_MODELS: Dict[str, Type[SyncModel]] = {
    "transactions": Transaction,
    "credit_cards": CreditCardPurchase,
    "recurring": RecurringItem,
    "assets": Asset,
    "budgets": BudgetCategory,
    "categories": Category,
    "settings": AppSettings,
}

# (coleção local, tabela remota)
SYNC_PLAN: Tuple[Tuple[str, str], ...] = tuple((name, name) for name in COLLECTION_MODELS)
