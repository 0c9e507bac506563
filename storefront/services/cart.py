"""
CartLedger — client-local cart for one open restaurant, priced with Decimal.

Totals:
  subtotal     = Σ quantity × price over entries whose product is known
  delivery_fee = restaurant fee for "delivery", 0 for "pickup" (flat fee)
  total        = subtotal + delivery_fee

Amounts are never rounded before summation; OrderTotals.rounded() is the
presentation boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from storefront.schemas.restaurant import ProductRead

_CENTS = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    """Round a Decimal amount to cents."""
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal

    def rounded(self) -> "OrderTotals":
        return OrderTotals(
            subtotal=to_money(self.subtotal),
            delivery_fee=to_money(self.delivery_fee),
            total=to_money(self.total),
        )


class CartLedger:
    """
    Mapping of product_id → quantity (always ≥ 1) for a single restaurant.
    Opening a different restaurant empties the cart.
    """

    def __init__(self, restaurant_id: Optional[int] = None) -> None:
        self.restaurant_id = restaurant_id
        self._quantities: dict[int, int] = {}

    @classmethod
    def from_quantities(
        cls, restaurant_id: int, quantities: dict[int, int]
    ) -> "CartLedger":
        """Rebuild a cart from a client payload; non-positive quantities are dropped."""
        cart = cls(restaurant_id)
        for product_id, quantity in quantities.items():
            if quantity > 0:
                cart.add_item(product_id, quantity)
        return cart

    # ── Mutation ─────────────────────────────────────────────────────────────

    def open_restaurant(self, restaurant_id: int) -> None:
        if restaurant_id != self.restaurant_id:
            self._quantities.clear()
            self.restaurant_id = restaurant_id

    def add_item(self, product_id: int, quantity: int = 1) -> None:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        self._quantities[product_id] = self._quantities.get(product_id, 0) + quantity

    def remove_item(self, product_id: int) -> None:
        """Decrement by one; drop the entry at zero. Unknown ids are a no-op."""
        current = self._quantities.get(product_id)
        if current is None:
            return
        if current <= 1:
            del self._quantities[product_id]
        else:
            self._quantities[product_id] = current - 1

    def clear(self) -> None:
        self._quantities.clear()

    # ── Queries ──────────────────────────────────────────────────────────────

    @property
    def quantities(self) -> dict[int, int]:
        return dict(self._quantities)

    @property
    def is_empty(self) -> bool:
        return not self._quantities

    def __len__(self) -> int:
        return len(self._quantities)

    def priced_lines(
        self, products: Iterable[ProductRead]
    ) -> list[tuple[ProductRead, int]]:
        """(product, quantity) for every entry whose product is known, in cart order."""
        by_id = {p.id: p for p in products}
        return [
            (by_id[product_id], quantity)
            for product_id, quantity in self._quantities.items()
            if product_id in by_id
        ]

    def total(
        self,
        products: Iterable[ProductRead],
        delivery_fee: Decimal = Decimal("0"),
        delivery_type: str = "delivery",
    ) -> OrderTotals:
        """Unrounded totals. Entries referencing unknown products are skipped."""
        subtotal = sum(
            (Decimal(product.price) * quantity for product, quantity in self.priced_lines(products)),
            Decimal("0"),
        )
        fee = Decimal(delivery_fee) if delivery_type == "delivery" else Decimal("0")
        return OrderTotals(subtotal=subtotal, delivery_fee=fee, total=subtotal + fee)
