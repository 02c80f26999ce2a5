"""
Catalog tests: admin-only maintenance and the guarded stock counters.
"""

import pytest

from errors import ForbiddenError, NotFoundError, UserInputError
from schemas import Product, ProductUpdate


def test_only_admin_manages_products(storefront, shopper, developer, admin):
    data = Product(title="Backpack", description="Everyday backpack", price=49.0, stock_quantity=7)

    for caller in (shopper, developer):
        with pytest.raises(ForbiddenError):
            storefront.catalog.create_product(caller, data)

    product = storefront.catalog.create_product(admin, data)
    assert product["stock_quantity"] == 7
    assert product["average_rating"] == 0.0
    assert product["reviews"] == []

    updated = storefront.catalog.update_product(admin, product["_id"], ProductUpdate(price=39.0))
    assert updated["price"] == 39.0
    assert updated["title"] == "Backpack"


def test_reserve_never_goes_negative(storefront, make_product, stock_of):
    mug = make_product(stock=5)

    assert storefront.catalog.reserve_stock(mug["_id"], 3)
    assert not storefront.catalog.reserve_stock(mug["_id"], 3)
    assert stock_of(mug) == 2

    assert storefront.catalog.release_stock(mug["_id"], 3)
    assert stock_of(mug) == 5


def test_listing_pages(storefront, make_product):
    for i in range(5):
        make_product(f"Item {i}")

    page, total = storefront.catalog.list_products(page=2, page_size=2)

    assert total == 5
    assert len(page) == 2


def test_lookups(storefront):
    with pytest.raises(NotFoundError):
        storefront.catalog.get_product("65a000000000000000000000")
    with pytest.raises(UserInputError, match="Invalid product id"):
        storefront.catalog.get_product("nope")


def test_filter_by_price_and_rating(storefront, make_product, db):
    cheap = make_product("Pencil", price=2.0)
    mid = make_product("Notebook", price=8.0)
    pricey = make_product("Fountain Pen", price=40.0)
    for product, rating in ((cheap, 2.0), (mid, 4.5), (pricey, 4.0)):
        db["product"].update_one({"_id": product["_id"]}, {"$set": {"average_rating": rating}})

    products, total = storefront.catalog.filter_products(min_price=5.0, max_price=50.0)
    assert total == 2
    assert {p["title"] for p in products} == {"Notebook", "Fountain Pen"}

    products, total = storefront.catalog.filter_products(min_rating=4.0, sort_option="priceLowToHigh")
    assert [p["title"] for p in products] == ["Notebook", "Fountain Pen"]

    products, _ = storefront.catalog.filter_products(sort_option="reviewHighToLow")
    assert [p["title"] for p in products] == ["Notebook", "Fountain Pen", "Pencil"]

    products, _ = storefront.catalog.filter_products(max_price=10.0, sort_option="priceHighToLow")
    assert [p["title"] for p in products] == ["Notebook", "Pencil"]


def test_filter_rejects_inverted_ranges(storefront):
    with pytest.raises(UserInputError, match="Invalid price range"):
        storefront.catalog.filter_products(min_price=10.0, max_price=1.0)
    with pytest.raises(UserInputError, match="Invalid rating range"):
        storefront.catalog.filter_products(min_rating=5.0, max_rating=1.0)


def test_search_matches_title_case_insensitively(storefront, make_product):
    make_product("Ceramic Mug")
    make_product("Travel mug")
    make_product("Tea (loose leaf)")

    products, total = storefront.catalog.search_products("MUG")
    assert total == 2
    assert {p["title"] for p in products} == {"Ceramic Mug", "Travel mug"}

    # Regex metacharacters are matched literally
    products, total = storefront.catalog.search_products("(loose")
    assert total == 1
    assert products[0]["title"] == "Tea (loose leaf)"


def test_products_by_user(storefront, admin, make_product):
    make_product("Unowned")
    created = storefront.catalog.create_product(
        admin, Product(title="Backpack", description="Everyday backpack", price=49.0)
    )

    products, total = storefront.catalog.products_by_user(admin.user_id)

    assert total == 1
    assert products[0]["_id"] == created["_id"]
