"""
Catalog filtering, sorting and filter statistics for the shop page.

A ProductQuery is built from the raw query-string parameters and can be
evaluated two ways: pushed down to MongoDB (mongo_filter / mongo_sort) or
applied in-process (matches / sort). Both give the same ordering, so the
memory store and the Mongo store agree.
"""

import operator
import re
from typing import Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pydantic import BaseModel, Field

from schemas import Product

DEFAULT_SORT = "newest"

# price bracket name -> Mongo comparison on price
PRICE_RANGES: Dict[str, Dict[str, float]] = {
    "under1000": {"$lt": 1000},
    "1000-3000": {"$gte": 1000, "$lte": 3000},
    "above3000": {"$gt": 3000},
}

# sortby key -> (field, direction); "_id" descending is creation order reversed
SORT_KEYS: Dict[str, Tuple[str, int]] = {
    "newest": ("_id", -1),
    "price-low": ("price", 1),
    "price-high": ("price", -1),
    "discount": ("discount", -1),
    "name": ("name", 1),
}

_COMPARE = {
    "$lt": operator.lt,
    "$lte": operator.le,
    "$gt": operator.gt,
    "$gte": operator.ge,
}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value) -> Optional[int]:
    """Read a leading integer the way a lenient form parser would ("12abc" -> 12)."""
    if value is None:
        return None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


class ProductQuery(BaseModel):
    search: Optional[str] = None
    category: Optional[str] = None
    price: Dict[str, float] = Field(default_factory=dict)
    on_sale: bool = False
    sortby: str = DEFAULT_SORT

    @classmethod
    def from_params(
        cls,
        search: Optional[str] = None,
        category: Optional[str] = None,
        priceRange: Optional[str] = None,
        minPrice: Optional[str] = None,
        maxPrice: Optional[str] = None,
        onSale: Optional[str] = None,
        sortby: Optional[str] = None,
    ) -> "ProductQuery":
        price = dict(PRICE_RANGES.get(priceRange or "", {}))

        # explicit bounds replace the bracket
        low, high = parse_int(minPrice), parse_int(maxPrice)
        if low is not None or high is not None:
            price = {}
            if low is not None:
                price["$gte"] = low
            if high is not None:
                price["$lte"] = high

        return cls(
            search=search or None,
            category=category or None,
            price=price,
            on_sale=onSale == "true",
            sortby=sortby if sortby in SORT_KEYS else DEFAULT_SORT,
        )

    # MongoDB form

    def mongo_filter(self) -> dict:
        query = {}
        if self.search:
            query["name"] = {"$regex": re.escape(self.search), "$options": "i"}
        if self.category:
            query["category"] = self.category
        if self.price:
            query["price"] = dict(self.price)
        if self.on_sale:
            query["discount"] = {"$gt": 0}
        return query

    def mongo_sort(self) -> List[Tuple[str, int]]:
        field, direction = SORT_KEYS[self.sortby]
        if field == "_id":
            return [("_id", direction)]
        return [(field, direction), ("_id", -1)]

    # In-process form

    def matches(self, product: Product) -> bool:
        if self.search and self.search.lower() not in product.name.lower():
            return False
        if self.category and product.category != self.category:
            return False
        for op, bound in self.price.items():
            if not _COMPARE[op](product.price, bound):
                return False
        if self.on_sale and not product.discount > 0:
            return False
        return True

    def sort(self, products: Iterable[Product]) -> List[Product]:
        # newest first, then a stable sort on the requested key
        ordered = sorted(products, key=lambda p: ObjectId(p.id), reverse=True)
        field, direction = SORT_KEYS[self.sortby]
        if field != "_id":
            ordered.sort(key=lambda p: getattr(p, field), reverse=direction < 0)
        return ordered

    def apply(self, products: Iterable[Product]) -> List[Product]:
        return self.sort(p for p in products if self.matches(p))


def catalog_stats(products: Iterable[Product]) -> dict:
    """Counts for the filter sidebar, always over the whole catalog."""
    products = list(products)
    return {
        "total": len(products),
        "onSale": sum(1 for p in products if p.discount > 0),
        "priceRanges": {
            "under1000": sum(1 for p in products if p.price < 1000),
            "between1000_3000": sum(1 for p in products if 1000 <= p.price <= 3000),
            "above3000": sum(1 for p in products if p.price > 3000),
        },
    }
