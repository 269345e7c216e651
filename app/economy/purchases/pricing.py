from __future__ import annotations

from datetime import datetime, timedelta
from urllib.parse import quote, urlencode

from app.economy.purchases.types import PriceQuote, UpiPaymentView


def quote_price(
    *,
    price: int,
    max_coin_discount: int,
    is_coin_product: bool,
    purchase_price: int | None,
    coin_balance: int,
) -> PriceQuote:
    if is_coin_product:
        base_price = purchase_price or price
        return PriceQuote(base_price=base_price, coins_applied=0, final_price=max(0, base_price))

    coins_applied = max(0, min(coin_balance, max_coin_discount, price))
    return PriceQuote(
        base_price=price,
        coins_applied=coins_applied,
        final_price=max(0, price - coins_applied),
    )


def build_upi_uri(*, payee_vpa: str, payee_name: str, amount: int, note: str) -> str:
    query = urlencode(
        {"pa": payee_vpa, "pn": payee_name, "am": str(amount), "cu": "INR", "tn": note},
        quote_via=quote,
    )
    return f"upi://pay?{query}"


def build_upi_payment_view(
    *,
    payee_vpa: str,
    payee_name: str,
    amount: int,
    product_name: str,
    window_seconds: int,
    now_utc: datetime,
) -> UpiPaymentView:
    """The countdown is informational; nothing expires the attempt when it ends."""
    return UpiPaymentView(
        uri=build_upi_uri(
            payee_vpa=payee_vpa,
            payee_name=payee_name,
            amount=amount,
            note=f"Purchase for {product_name}",
        ),
        amount=amount,
        payee_vpa=payee_vpa,
        payment_window_seconds=window_seconds,
        payment_window_ends_at=now_utc + timedelta(seconds=window_seconds),
    )
