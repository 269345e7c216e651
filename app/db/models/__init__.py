from app.db.models.account_network_origins import AccountNetworkOrigin
from app.db.models.accounts import Account
from app.db.models.blocked_identifiers import BlockedIdentifier
from app.db.models.coin_ledger_entries import CoinLedgerEntry
from app.db.models.custom_ads import CustomAd
from app.db.models.orders import Order
from app.db.models.product_controls import ProductControl
from app.db.models.products import Product
from app.db.models.promotion_records import PromotionRecord

__all__ = [
    "Account",
    "AccountNetworkOrigin",
    "BlockedIdentifier",
    "CoinLedgerEntry",
    "CustomAd",
    "Order",
    "Product",
    "ProductControl",
    "PromotionRecord",
]
