"""
Catalog aggregation

Groups identically named listings from different sellers into one catalog
entry, ranks each group's sellers by distance from the buyer and derives the
price/stock aggregates shown on the customer dashboard. Groups are rebuilt
from the listing set on every catalog view and never persisted.
"""
from typing import Any, Dict, Iterable, List, Optional
from pydantic import BaseModel, Field
import logging

from utils.distance import haversine, format_distance

logger = logging.getLogger(__name__)

LOCAL_SPECIALTIES = "Local Specialties"
DEFAULT_CATEGORY = "Other"


class Listing(BaseModel):
    """One in-stock product row annotated with its seller"""
    id: str
    name: str
    price: float
    stock: int
    seller_id: str
    seller_name: str = "Unknown Seller"
    category: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_local_specialty: bool = False
    seller_lat: Optional[float] = None
    seller_lng: Optional[float] = None


class SellerOption(BaseModel):
    product_id: str
    seller_id: str
    seller_name: str
    price: float
    stock: int
    distance: Optional[float] = None
    distance_formatted: str = "Distance unknown"
    is_local: bool = False


class GroupedProduct(BaseModel):
    key: str
    name: str
    category: str
    description: str = ""
    image_url: Optional[str] = None
    min_price: float
    max_price: float
    total_stock: int
    seller_count: int
    is_local: bool
    sellers: List[SellerOption]
    nearest_seller: Optional[SellerOption] = None


class CatalogFilters(BaseModel):
    search: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    exclude_out_of_stock: bool = False
    category: Optional[str] = None


def group_key(name: str) -> str:
    return name.strip().lower()


def _distance_sort_key(option: SellerOption):
    # Unknown distances go last; sort() is stable so ties keep insertion order
    return (option.distance is None, option.distance or 0.0)


def group_listings(
    listings: Iterable[Listing],
    buyer_lat: Optional[float] = None,
    buyer_lng: Optional[float] = None,
) -> List[GroupedProduct]:
    """Aggregate listings by normalized name; groups keep first-seen order"""
    groups: Dict[str, GroupedProduct] = {}

    for listing in listings:
        key = group_key(listing.name)
        distance = haversine(buyer_lat, buyer_lng, listing.seller_lat, listing.seller_lng)

        option = SellerOption(
            product_id=listing.id,
            seller_id=listing.seller_id,
            seller_name=listing.seller_name,
            price=listing.price,
            stock=listing.stock,
            distance=distance,
            distance_formatted=format_distance(distance),
            is_local=listing.is_local_specialty,
        )

        group = groups.get(key)
        if group is None:
            groups[key] = GroupedProduct(
                key=key,
                name=listing.name.strip(),
                category=listing.category or DEFAULT_CATEGORY,
                description=listing.description or "",
                image_url=listing.image_url,
                min_price=listing.price,
                max_price=listing.price,
                total_stock=listing.stock,
                seller_count=1,
                is_local=listing.is_local_specialty,
                sellers=[option],
            )
            continue

        group.sellers.append(option)
        group.seller_count += 1
        group.min_price = min(group.min_price, listing.price)
        group.max_price = max(group.max_price, listing.price)
        group.total_stock += listing.stock
        group.is_local = group.is_local or listing.is_local_specialty

    for group in groups.values():
        group.sellers.sort(key=_distance_sort_key)
        group.nearest_seller = group.sellers[0]

    return list(groups.values())


def filter_groups(groups: Iterable[GroupedProduct], filters: CatalogFilters) -> List[GroupedProduct]:
    """Apply the dashboard filters; every predicate must hold"""
    search = filters.search.strip().lower() if filters.search else None
    category = filters.category if filters.category and filters.category != "all" else None

    result = []
    for group in groups:
        if search and search not in group.name.lower():
            continue
        # Both price bounds compare against the cheapest seller
        if filters.min_price is not None and group.min_price < filters.min_price:
            continue
        if filters.max_price is not None and group.min_price > filters.max_price:
            continue
        if filters.exclude_out_of_stock and group.total_stock == 0:
            continue
        if category == LOCAL_SPECIALTIES:
            if not group.is_local:
                continue
        elif category and group.category != category:
            continue
        result.append(group)
    return result


def group_by_category(groups: Iterable[GroupedProduct]) -> Dict[str, List[GroupedProduct]]:
    """
    Bucket groups for display. Local specialties are additionally collected in
    a synthetic first bucket; the other buckets follow alphabetically.
    """
    groups = list(groups)
    buckets: Dict[str, List[GroupedProduct]] = {}
    for group in groups:
        buckets.setdefault(group.category, []).append(group)

    ordered: Dict[str, List[GroupedProduct]] = {}
    local = [group for group in groups if group.is_local]
    if local:
        ordered[LOCAL_SPECIALTIES] = local + [
            group for group in buckets.pop(LOCAL_SPECIALTIES, []) if not group.is_local
        ]
    for name in sorted(buckets):
        ordered[name] = buckets[name]
    return ordered


def category_order(groups: Iterable[GroupedProduct]) -> List[str]:
    return list(group_by_category(groups).keys())


class ListingCache:
    """
    Local copy of the listing set fed by the live-update channel.

    Every change is a full-row replacement keyed by product id, so replaying
    the same change is harmless.
    """

    def __init__(self):
        self._rows: Dict[str, Listing] = {}
        self.is_warm = False

    def load(self, listings: Iterable[Listing]):
        self._rows = {listing.id: listing for listing in listings}
        self.is_warm = True
        logger.info(f"Listing cache loaded with {len(self._rows)} rows")

    def upsert(self, listing: Listing):
        self._rows[listing.id] = listing

    def remove(self, product_id: str):
        self._rows.pop(str(product_id), None)

    def apply_change(
        self,
        event_type: str,
        record: Optional[Dict[str, Any]],
        old_record: Optional[Dict[str, Any]] = None,
        seller: Optional[Dict[str, Any]] = None,
    ):
        """
        Apply one database change event (INSERT / UPDATE / DELETE).
        Change payloads carry only product columns; the seller annotation
        comes from `seller` when given, otherwise from the cached row.
        Wholesale listings never enter the customer catalog.
        """
        event_type = event_type.upper()
        if event_type == "DELETE":
            row = old_record or record or {}
            if row.get("id") is not None:
                self.remove(row["id"])
            return

        if event_type not in ("INSERT", "UPDATE") or not record:
            raise ValueError(f"Unsupported change event '{event_type}'")

        product_id = str(record["id"])
        if record.get("is_bulk"):
            self.remove(product_id)
            return

        current = self._rows.get(product_id)
        merged = current.model_dump() if current else {}
        if seller:
            merged.update(seller)
        merged.update({key: value for key, value in record.items() if key in Listing.model_fields})
        merged["id"] = product_id
        if merged.get("seller_id") is not None:
            merged["seller_id"] = str(merged["seller_id"])
        self._rows[product_id] = Listing.model_validate(merged)

    def listings(self, in_stock_only: bool = True) -> List[Listing]:
        return [row for row in self._rows.values() if row.stock > 0 or not in_stock_only]

    def __len__(self):
        return len(self._rows)
