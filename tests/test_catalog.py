import pytest

from services.catalog import (
    LOCAL_SPECIALTIES,
    CatalogFilters,
    Listing,
    ListingCache,
    category_order,
    filter_groups,
    group_by_category,
    group_listings,
)


def listing(id, name, price, stock=5, seller_lat=None, seller_lng=None, **fields):
    return Listing(
        id=id,
        name=name,
        price=price,
        stock=stock,
        seller_id=f"seller-{id}",
        seller_name=f"Seller {id}",
        seller_lat=seller_lat,
        seller_lng=seller_lng,
        **fields,
    )


def test_nearest_seller_wins_over_cheapest():
    groups = group_listings(
        [
            listing("a", "Apples", 100, seller_lat=0, seller_lng=0),
            listing("b", "Apples", 90, seller_lat=0, seller_lng=1),
        ],
        buyer_lat=0,
        buyer_lng=0,
    )

    assert len(groups) == 1
    apples = groups[0]
    assert apples.min_price == 90
    assert apples.max_price == 100
    assert apples.seller_count == 2
    assert apples.nearest_seller.price == 100
    assert apples.nearest_seller.distance == 0
    assert apples.sellers[1].distance == pytest.approx(111.19, abs=0.01)


def test_names_group_case_and_whitespace_insensitive():
    groups = group_listings([
        listing("a", "Apples", 100, stock=3),
        listing("b", "  apples ", 80, stock=4),
        listing("c", "Bananas", 40, stock=0),
    ])

    assert [group.key for group in groups] == ["apples", "bananas"]
    assert groups[0].name == "Apples"
    assert groups[0].total_stock == 7
    assert groups[0].total_stock == sum(option.stock for option in groups[0].sellers)


def test_unknown_distances_sort_last_and_keep_insertion_order():
    groups = group_listings(
        [
            listing("far-unknown", "Milk", 50),
            listing("far", "Milk", 50, seller_lat=0, seller_lng=2),
            listing("other-unknown", "Milk", 50),
            listing("near", "Milk", 50, seller_lat=0, seller_lng=0.5),
        ],
        buyer_lat=0,
        buyer_lng=0,
    )

    order = [option.product_id for option in groups[0].sellers]
    assert order == ["near", "far", "far-unknown", "other-unknown"]


def test_missing_buyer_location_gives_null_distances():
    groups = group_listings([listing("a", "Rice", 60, seller_lat=10, seller_lng=10)])

    option = groups[0].nearest_seller
    assert option.distance is None
    assert option.distance_formatted == "Distance unknown"


def test_local_flag_is_ored_across_sellers():
    groups = group_listings([
        listing("a", "Honey", 300),
        listing("b", "Honey", 280, is_local_specialty=True),
    ])
    assert groups[0].is_local is True


class TestFilters:
    @pytest.fixture
    def groups(self):
        return group_listings([
            listing("a", "Apples", 100, category="Fruits"),
            listing("b", "Apples", 90, category="Fruits"),
            listing("c", "Basmati Rice", 120, category="Grains"),
            listing("d", "Mango Pickle", 150, stock=0, category="Condiments", is_local_specialty=True),
        ])

    def names(self, groups):
        return [group.name for group in groups]

    def test_search_is_case_insensitive_substring(self, groups):
        assert self.names(filter_groups(groups, CatalogFilters(search="RICE"))) == ["Basmati Rice"]

    def test_price_bounds_use_cheapest_seller(self, groups):
        result = filter_groups(groups, CatalogFilters(min_price=95))
        assert "Apples" not in self.names(result)

        result = filter_groups(groups, CatalogFilters(max_price=95))
        assert self.names(result) == ["Apples"]

    def test_exclude_out_of_stock(self, groups):
        result = filter_groups(groups, CatalogFilters(exclude_out_of_stock=True))
        assert "Mango Pickle" not in self.names(result)

    def test_category_and_local_specialties(self, groups):
        assert self.names(filter_groups(groups, CatalogFilters(category="Grains"))) == ["Basmati Rice"]
        assert self.names(filter_groups(groups, CatalogFilters(category=LOCAL_SPECIALTIES))) == ["Mango Pickle"]
        assert len(filter_groups(groups, CatalogFilters(category="all"))) == 3

    def test_filters_combine(self, groups):
        result = filter_groups(groups, CatalogFilters(search="a", max_price=130, category="Fruits"))
        assert self.names(result) == ["Apples"]


def test_local_specialties_first_then_alphabetical():
    groups = group_listings([
        listing("a", "Tomatoes", 30, category="Vegetables"),
        listing("b", "Apples", 100, category="Fruits"),
        listing("c", "Mango Pickle", 150, category="Condiments", is_local_specialty=True),
    ])

    assert category_order(groups) == [LOCAL_SPECIALTIES, "Condiments", "Fruits", "Vegetables"]
    assert [group.name for group in group_by_category(groups)[LOCAL_SPECIALTIES]] == ["Mango Pickle"]


def test_no_local_bucket_without_local_groups():
    groups = group_listings([listing("a", "Apples", 100)])
    assert category_order(groups) == ["Other"]


class TestListingCache:
    def record(self, **fields):
        row = {
            "id": "p1",
            "name": "Apples",
            "price": 100.0,
            "stock": 5,
            "seller_id": "s1",
            "is_bulk": False,
            "created_at": "2026-01-01T00:00:00Z",
        }
        row.update(fields)
        return row

    def test_insert_then_update_replaces_row(self):
        cache = ListingCache()
        cache.apply_change("INSERT", self.record(), seller={"seller_name": "Fresh Mart", "seller_lat": 1.0})
        cache.apply_change("UPDATE", self.record(price=80.0))

        rows = cache.listings()
        assert len(rows) == 1
        assert rows[0].price == 80.0
        # seller annotation survives an update without one
        assert rows[0].seller_name == "Fresh Mart"
        assert rows[0].seller_lat == 1.0

    def test_replaying_a_change_is_harmless(self):
        cache = ListingCache()
        for _ in range(3):
            cache.apply_change("UPDATE", self.record(stock=2))
        assert len(cache) == 1
        assert cache.listings()[0].stock == 2

    def test_delete_uses_old_record(self):
        cache = ListingCache()
        cache.apply_change("INSERT", self.record())
        cache.apply_change("DELETE", None, old_record={"id": "p1"})
        assert len(cache) == 0

    def test_bulk_listings_are_kept_out(self):
        cache = ListingCache()
        cache.apply_change("INSERT", self.record())
        cache.apply_change("UPDATE", self.record(is_bulk=True))
        assert len(cache) == 0

    def test_out_of_stock_rows_hidden_from_listings(self):
        cache = ListingCache()
        cache.apply_change("INSERT", self.record(stock=0))
        assert cache.listings() == []
        assert len(cache.listings(in_stock_only=False)) == 1

    def test_unknown_event_rejected(self):
        with pytest.raises(ValueError):
            ListingCache().apply_change("TRUNCATE", self.record())

    def test_load_marks_cache_warm(self):
        cache = ListingCache()
        assert cache.is_warm is False
        cache.load([listing("a", "Apples", 100)])
        assert cache.is_warm is True
        assert len(cache) == 1
