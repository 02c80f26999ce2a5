"""
End-to-end tests over HTTP: GraphQL checkout flow, error codes, payments.
"""

from types import SimpleNamespace

import pytest
import stripe
from fastapi.testclient import TestClient
from strawberry.extensions import MaskErrors, SchemaExtension

from auth import sign_token
from graphql_api import schema
from main import create_app

ADD_TO_CART = """
mutation Add($productId: ID!, $quantity: Int!) {
  addToCart(productId: $productId, quantity: $quantity) {
    totalPrice
    products { quantity product { id title price } }
  }
}
"""

CREATE_ORDER = """
mutation Checkout($products: [OrderProductInput!]!, $total: Float!) {
  createOrder(
    products: $products
    totalAmount: $total
    address: {street: "1 Main St", city: "Ottawa", state: "ON", postalCode: "K1A 0B1"}
    status: "pending"
    name: "Jane Shopper"
    email: "jane@shopper.io"
  ) {
    id
    status
    totalAmount
    products { productId orderQuantity unitPrice }
  }
}
"""


@pytest.fixture
def client(db):
    return TestClient(create_app(db))


def _auth(caller):
    return {"Authorization": f"Bearer {sign_token(caller.user_id, role=caller.role.value)}"}


def _gql(client, query, variables=None, caller=None):
    headers = _auth(caller) if caller else {}
    response = client.post("/graphql", json={"query": query, "variables": variables or {}}, headers=headers)
    assert response.status_code == 200
    return response.json()


def test_checkout_flow(client, shopper, make_product, stock_of):
    mug = make_product(price=10.0, stock=10)
    product_id = str(mug["_id"])

    created = _gql(client, "mutation { createCart { totalPrice products { quantity } } }", caller=shopper)
    assert created["data"]["createCart"] == {"totalPrice": 0.0, "products": []}

    added = _gql(client, ADD_TO_CART, {"productId": product_id, "quantity": 4}, caller=shopper)
    cart = added["data"]["addToCart"]
    assert cart["totalPrice"] == 40.0
    assert cart["products"][0]["product"]["id"] == product_id

    placed = _gql(client, CREATE_ORDER, {
        "products": [{"productId": product_id, "orderQuantity": 4}],
        "total": 40.0,
    }, caller=shopper)
    order = placed["data"]["createOrder"]
    assert order["status"] == "pending"
    assert order["totalAmount"] == 40.0
    assert order["products"] == [{"productId": product_id, "orderQuantity": 4, "unitPrice": 10.0}]
    assert stock_of(mug) == 6

    after = _gql(client, "{ cart { totalPrice products { quantity } } }", caller=shopper)
    assert after["data"]["cart"] == {"totalPrice": 0.0, "products": []}

    listed = _gql(client, "{ ordersByUser(page: 1, pageSize: 5) { totalOrders orders { id } } }", caller=shopper)
    assert listed["data"]["ordersByUser"]["totalOrders"] == 1
    assert listed["data"]["ordersByUser"]["orders"][0]["id"] == order["id"]


def test_anonymous_request_gets_unauthenticated_code(client):
    result = _gql(client, "mutation { createCart { totalPrice } }")
    assert result["errors"][0]["extensions"]["code"] == "UNAUTHENTICATED"


def test_insufficient_stock_code(client, shopper, make_product, stock_of):
    mug = make_product(stock=3)

    result = _gql(client, CREATE_ORDER, {
        "products": [{"productId": str(mug["_id"]), "orderQuantity": 5}],
        "total": 50.0,
    }, caller=shopper)

    assert result["errors"][0]["extensions"]["code"] == "INSUFFICIENT_STOCK"
    assert stock_of(mug) == 3


def test_invalid_postal_code_is_bad_input(client, shopper, make_product):
    mug = make_product()
    query = CREATE_ORDER.replace("K1A 0B1", "12345")

    result = _gql(client, query, {
        "products": [{"productId": str(mug["_id"]), "orderQuantity": 1}],
        "total": 10.0,
    }, caller=shopper)

    error = result["errors"][0]
    assert error["extensions"]["code"] == "BAD_USER_INPUT"
    assert "A1A 1A1" in error["message"]


def test_shopper_cannot_update_order_status(client, shopper, developer, make_product, stock_of):
    mug = make_product(stock=5)
    placed = _gql(client, CREATE_ORDER, {
        "products": [{"productId": str(mug["_id"]), "orderQuantity": 2}],
        "total": 20.0,
    }, caller=shopper)
    order_id = placed["data"]["createOrder"]["id"]
    cancel = 'mutation($id: ID!) { updateOrder(id: $id, status: "canceled") { status } }'

    denied = _gql(client, cancel, {"id": order_id}, caller=shopper)
    assert denied["errors"][0]["extensions"]["code"] == "FORBIDDEN"
    assert stock_of(mug) == 3

    allowed = _gql(client, cancel, {"id": order_id}, caller=developer)
    assert allowed["data"]["updateOrder"]["status"] == "canceled"
    assert stock_of(mug) == 5


def test_review_mutations_update_product_rating(client, shopper, other_shopper, make_product):
    mug = make_product()
    create = "mutation($p: ID!, $r: Float!) { createReview(productId: $p, rating: $r, comment: \"ok\") { id } }"

    _gql(client, create, {"p": str(mug["_id"]), "r": 4.0}, caller=shopper)
    _gql(client, create, {"p": str(mug["_id"]), "r": 2.0}, caller=other_shopper)
    duplicate = _gql(client, create, {"p": str(mug["_id"]), "r": 5.0}, caller=shopper)
    assert duplicate["errors"][0]["extensions"]["code"] == "BAD_USER_INPUT"

    product = _gql(client, "query($id: ID!) { product(id: $id) { averageRating reviewIds } }", {"id": str(mug["_id"])})
    assert product["data"]["product"]["averageRating"] == 3.0
    assert len(product["data"]["product"]["reviewIds"]) == 2


def test_payment_intent_route(client, monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="pi_123", client_secret="pi_123_secret")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    response = client.post("/api/payments/create-payment-intent", json={"amount": 52.5, "currency": "CAD"})

    assert response.status_code == 200
    assert response.json() == {"client_secret": "pi_123_secret"}
    assert captured["amount"] == 5250
    assert captured["currency"] == "cad"


def test_payment_gateway_failure_is_masked(client, monkeypatch):
    def failing_create(**kwargs):
        raise RuntimeError("card network unreachable")

    monkeypatch.setattr(stripe.PaymentIntent, "create", failing_create)

    response = client.post("/api/payments/create-payment-intent", json={"amount": 10, "currency": "cad"})

    assert response.status_code == 500
    assert response.json() == {"detail": "Failed to create payment intent"}


def test_health_check_lists_collections(client, make_product):
    make_product()
    body = client.get("/test").json()
    assert body["database"] == "Connected & Working"
    assert "product" in body["collections"]


def test_product_discovery_queries(client, make_product):
    make_product("Ceramic Mug", price=12.0)
    make_product("Travel Mug", price=25.0)
    make_product("Tea Towel", price=6.0)

    filtered = _gql(client, """
      { filteredProducts(minPrice: 10, sortOption: "priceHighToLow") { totalProducts products { title } } }
    """)
    assert filtered["data"]["filteredProducts"] == {
        "totalProducts": 2,
        "products": [{"title": "Travel Mug"}, {"title": "Ceramic Mug"}],
    }

    found = _gql(client, '{ searchProducts(searchTerm: "mug") { totalProducts } }')
    assert found["data"]["searchProducts"]["totalProducts"] == 2

    inverted = _gql(client, "{ filteredProducts(minPrice: 10, maxPrice: 1) { totalProducts } }")
    assert inverted["errors"][0]["extensions"]["code"] == "BAD_USER_INPUT"


def test_error_masking_extension_built_per_request():
    assert not any(isinstance(ext, SchemaExtension) for ext in schema.extensions)
    assert any(isinstance(ext, MaskErrors) for ext in schema.get_extensions())
