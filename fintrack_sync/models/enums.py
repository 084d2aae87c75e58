from enum import Enum


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class Currency(str, Enum):
    USD = "USD"
    ARS = "ARS"
    EUR = "EUR"


class AssetType(str, Enum):
    SAVINGS = "SAVINGS"
    INVESTMENT = "INVESTMENT"
    CASH = "CASH"


class Language(str, Enum):
    EN = "en"
    ES = "es"
