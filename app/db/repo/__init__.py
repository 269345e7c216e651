from app.db.repo.accounts_repo import AccountsRepo
from app.db.repo.ads_repo import AdsRepo
from app.db.repo.blocks_repo import BlocksRepo
from app.db.repo.coin_ledger_repo import CoinLedgerRepo
from app.db.repo.network_origins_repo import NetworkOriginsRepo
from app.db.repo.orders_repo import OrdersRepo
from app.db.repo.products_repo import ProductsRepo
from app.db.repo.promotions_repo import PromotionsRepo

__all__ = [
    "AccountsRepo",
    "AdsRepo",
    "BlocksRepo",
    "CoinLedgerRepo",
    "NetworkOriginsRepo",
    "OrdersRepo",
    "ProductsRepo",
    "PromotionsRepo",
]
