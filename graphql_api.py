"""
GraphQL schema.

Thin resolvers over the Storefront services. Documents are converted to
GraphQL types here; all business rules live in the services.
"""

from datetime import datetime
from typing import List, Optional

import strawberry
from pydantic import ValidationError as PydanticValidationError
from strawberry.extensions import MaskErrors
from strawberry.types import Info

from errors import InternalError, StorefrontError, UserInputError, describe_validation_error
from schemas import OrderInput, OrderUpdate, Product, ProductUpdate, ReviewInput, ReviewUpdate


def _iso(value) -> Optional[str]:
    return value.isoformat() if isinstance(value, datetime) else None


def _validate(model, **data):
    try:
        return model(**data)
    except PydanticValidationError as e:
        raise UserInputError(describe_validation_error(e)) from e


def _storefront(info: Info):
    storefront = info.context.get("storefront")
    if storefront is None:
        raise InternalError("Database not available")
    return storefront


def _caller(info: Info):
    return info.context.get("caller")


# ---------------------------
# Types
# ---------------------------
@strawberry.type(name="Product")
class ProductType:
    id: strawberry.ID
    title: str
    description: str
    price: float
    stock_quantity: int
    average_rating: float
    image: Optional[str]
    review_ids: List[strawberry.ID]
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_document(cls, doc: dict) -> "ProductType":
        return cls(
            id=strawberry.ID(str(doc["_id"])),
            title=doc["title"],
            description=doc.get("description", ""),
            price=doc["price"],
            stock_quantity=doc.get("stock_quantity", 0),
            average_rating=doc.get("average_rating", 0.0),
            image=doc.get("image"),
            review_ids=[strawberry.ID(str(r)) for r in doc.get("reviews", [])],
            created_at=_iso(doc.get("created_at")),
            updated_at=_iso(doc.get("updated_at")),
        )


@strawberry.type(name="ProductPagination")
class ProductPage:
    products: List[ProductType]
    total_products: int


@strawberry.type(name="CartProduct")
class CartProductType:
    product: ProductType
    quantity: int


@strawberry.type(name="Cart")
class CartType:
    id: strawberry.ID
    user_id: strawberry.ID
    products: List[CartProductType]
    total_price: float
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_document(cls, doc: dict, storefront) -> "CartType":
        lines = doc.get("products", [])
        products = storefront.catalog.find_products([line["product"] for line in lines]) if lines else {}
        return cls(
            id=strawberry.ID(str(doc["_id"])),
            user_id=strawberry.ID(str(doc["user"])),
            products=[
                CartProductType(product=ProductType.from_document(products[line["product"]]), quantity=line["quantity"])
                for line in lines
                if line["product"] in products
            ],
            total_price=doc.get("total_price", 0.0),
            created_at=_iso(doc.get("created_at")),
            updated_at=_iso(doc.get("updated_at")),
        )


@strawberry.type(name="OrderProduct")
class OrderProductType:
    product_id: strawberry.ID
    title: str
    unit_price: float
    order_quantity: int


@strawberry.type(name="OrderAddress")
class OrderAddressType:
    street: str
    city: str
    state: str
    postal_code: str


@strawberry.type(name="Order")
class OrderType:
    id: strawberry.ID
    user_id: strawberry.ID
    name: str
    email: str
    address: OrderAddressType
    products: List[OrderProductType]
    total_amount: float
    status: str
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_document(cls, doc: dict) -> "OrderType":
        return cls(
            id=strawberry.ID(str(doc["_id"])),
            user_id=strawberry.ID(str(doc["user"])),
            name=doc["name"],
            email=doc["email"],
            address=OrderAddressType(**doc["address"]),
            products=[
                OrderProductType(
                    product_id=strawberry.ID(str(line["product_id"])),
                    title=line["title"],
                    unit_price=line["unit_price"],
                    order_quantity=line["order_quantity"],
                )
                for line in doc.get("products", [])
            ],
            total_amount=doc["total_amount"],
            status=doc["status"],
            created_at=_iso(doc.get("created_at")),
            updated_at=_iso(doc.get("updated_at")),
        )


@strawberry.type(name="OrderPagination")
class OrderPage:
    orders: List[OrderType]
    total_orders: int


@strawberry.type(name="Review")
class ReviewType:
    id: strawberry.ID
    user_id: strawberry.ID
    product_id: strawberry.ID
    rating: float
    comment: str
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_document(cls, doc: dict) -> "ReviewType":
        return cls(
            id=strawberry.ID(str(doc["_id"])),
            user_id=strawberry.ID(str(doc["user"])),
            product_id=strawberry.ID(str(doc["product"])),
            rating=doc["rating"],
            comment=doc["comment"],
            created_at=_iso(doc.get("created_at")),
            updated_at=_iso(doc.get("updated_at")),
        )


@strawberry.type(name="ReviewPagination")
class ReviewPage:
    reviews: List[ReviewType]
    total_reviews: int


@strawberry.input(name="OrderProductInput")
class OrderProductInput:
    product_id: strawberry.ID
    order_quantity: int


@strawberry.input(name="OrderAddressInput")
class OrderAddressInput:
    street: str
    city: str
    state: str
    postal_code: str

    def to_dict(self) -> dict:
        return {"street": self.street, "city": self.city, "state": self.state, "postal_code": self.postal_code}


# ---------------------------
# Queries
# ---------------------------
@strawberry.type
class Query:
    @strawberry.field
    def product(self, info: Info, id: strawberry.ID) -> ProductType:
        return ProductType.from_document(_storefront(info).catalog.get_product(id))

    @strawberry.field
    def products(self, info: Info, page: int = 1, page_size: Optional[int] = None) -> ProductPage:
        products, total = _storefront(info).catalog.list_products(page, page_size)
        return ProductPage(products=[ProductType.from_document(p) for p in products], total_products=total)

    @strawberry.field
    def filtered_products(self, info: Info, min_price: Optional[float] = None, max_price: Optional[float] = None,
                          min_rating: Optional[float] = None, max_rating: Optional[float] = None,
                          sort_option: Optional[str] = None, page: int = 1,
                          page_size: Optional[int] = None) -> ProductPage:
        products, total = _storefront(info).catalog.filter_products(
            min_price, max_price, min_rating, max_rating, sort_option, page, page_size
        )
        return ProductPage(products=[ProductType.from_document(p) for p in products], total_products=total)

    @strawberry.field
    def search_products(self, info: Info, search_term: str, page: int = 1,
                        page_size: Optional[int] = None) -> ProductPage:
        products, total = _storefront(info).catalog.search_products(search_term, page, page_size)
        return ProductPage(products=[ProductType.from_document(p) for p in products], total_products=total)

    @strawberry.field
    def products_by_user(self, info: Info, user_id: strawberry.ID, page: int = 1,
                         page_size: Optional[int] = None) -> ProductPage:
        products, total = _storefront(info).catalog.products_by_user(user_id, page, page_size)
        return ProductPage(products=[ProductType.from_document(p) for p in products], total_products=total)

    @strawberry.field
    def cart(self, info: Info) -> Optional[CartType]:
        storefront = _storefront(info)
        cart = storefront.carts.get_cart(_caller(info))
        return CartType.from_document(cart, storefront) if cart else None

    @strawberry.field
    def order(self, info: Info, id: strawberry.ID) -> OrderType:
        return OrderType.from_document(_storefront(info).orders.get_order(_caller(info), id))

    @strawberry.field
    def orders_by_user(self, info: Info, page: int = 1, page_size: Optional[int] = None) -> OrderPage:
        orders, total = _storefront(info).orders.orders_by_user(_caller(info), page, page_size)
        return OrderPage(orders=[OrderType.from_document(o) for o in orders], total_orders=total)

    @strawberry.field
    def reviews_for_product(self, info: Info, product_id: strawberry.ID, page: int = 1,
                            page_size: Optional[int] = None) -> ReviewPage:
        reviews, total = _storefront(info).reviews.reviews_for_product(product_id, page, page_size)
        return ReviewPage(reviews=[ReviewType.from_document(r) for r in reviews], total_reviews=total)

    @strawberry.field
    def reviews_by_user(self, info: Info, user_id: strawberry.ID, page: int = 1,
                        page_size: Optional[int] = None) -> ReviewPage:
        reviews, total = _storefront(info).reviews.reviews_by_user(user_id, page, page_size)
        return ReviewPage(reviews=[ReviewType.from_document(r) for r in reviews], total_reviews=total)

    @strawberry.field
    def user_product_review(self, info: Info, product_id: strawberry.ID) -> Optional[ReviewType]:
        review = _storefront(info).reviews.user_product_review(_caller(info), product_id)
        return ReviewType.from_document(review) if review else None


# ---------------------------
# Mutations
# ---------------------------
@strawberry.type
class Mutation:
    # Cart
    @strawberry.mutation
    def create_cart(self, info: Info) -> CartType:
        storefront = _storefront(info)
        return CartType.from_document(storefront.carts.create_cart(_caller(info)), storefront)

    @strawberry.mutation
    def add_to_cart(self, info: Info, product_id: strawberry.ID, quantity: int) -> CartType:
        storefront = _storefront(info)
        return CartType.from_document(storefront.carts.add_item(_caller(info), product_id, quantity), storefront)

    @strawberry.mutation
    def remove_from_cart(self, info: Info, product_id: strawberry.ID) -> CartType:
        storefront = _storefront(info)
        return CartType.from_document(storefront.carts.remove_item(_caller(info), product_id), storefront)

    @strawberry.mutation
    def update_cart_product_quantity(self, info: Info, product_id: strawberry.ID, quantity: int) -> CartType:
        storefront = _storefront(info)
        cart = storefront.carts.set_item_quantity(_caller(info), product_id, quantity)
        return CartType.from_document(cart, storefront)

    @strawberry.mutation
    def reset_cart(self, info: Info) -> CartType:
        storefront = _storefront(info)
        return CartType.from_document(storefront.carts.reset_cart(_caller(info)), storefront)

    # Orders
    @strawberry.mutation
    def create_order(self, info: Info, products: List[OrderProductInput], total_amount: float,
                     address: OrderAddressInput, name: str, email: str, status: str = "pending") -> OrderType:
        order = _validate(
            OrderInput,
            name=name,
            email=email,
            address=address.to_dict(),
            products=[{"product_id": str(p.product_id), "order_quantity": p.order_quantity} for p in products],
            total_amount=total_amount,
            status=status,
        )
        return OrderType.from_document(_storefront(info).orders.create_order(_caller(info), order))

    @strawberry.mutation
    def update_order(self, info: Info, id: strawberry.ID, status: Optional[str] = None, name: Optional[str] = None,
                     email: Optional[str] = None, address: Optional[OrderAddressInput] = None) -> OrderType:
        changes = _validate(
            OrderUpdate,
            status=status,
            name=name,
            email=email,
            address=address.to_dict() if address else None,
        )
        return OrderType.from_document(_storefront(info).orders.update_order(_caller(info), id, changes))

    @strawberry.mutation
    def cancel_order(self, info: Info, id: strawberry.ID) -> OrderType:
        return OrderType.from_document(_storefront(info).orders.cancel_order(_caller(info), id))

    # Reviews
    @strawberry.mutation
    def create_review(self, info: Info, product_id: strawberry.ID, rating: float, comment: str) -> ReviewType:
        review = _validate(ReviewInput, rating=rating, comment=comment)
        return ReviewType.from_document(_storefront(info).reviews.create_review(_caller(info), product_id, review))

    @strawberry.mutation
    def update_review(self, info: Info, id: strawberry.ID, rating: Optional[float] = None,
                      comment: Optional[str] = None) -> ReviewType:
        changes = _validate(ReviewUpdate, rating=rating, comment=comment)
        return ReviewType.from_document(_storefront(info).reviews.update_review(_caller(info), id, changes))

    @strawberry.mutation
    def delete_review(self, info: Info, id: strawberry.ID) -> ReviewType:
        return ReviewType.from_document(_storefront(info).reviews.delete_review(_caller(info), id))

    @strawberry.mutation
    def developer_delete_review(self, info: Info, review_id: strawberry.ID) -> ReviewType:
        return ReviewType.from_document(_storefront(info).reviews.force_delete_review(_caller(info), review_id))

    # Catalog (admin)
    @strawberry.mutation
    def create_product(self, info: Info, title: str, description: str, price: float,
                       stock_quantity: int = 0, image: Optional[str] = None) -> ProductType:
        data = _validate(Product, title=title, description=description, price=price,
                         stock_quantity=stock_quantity, image=image)
        return ProductType.from_document(_storefront(info).catalog.create_product(_caller(info), data))

    @strawberry.mutation
    def update_product(self, info: Info, id: strawberry.ID, title: Optional[str] = None,
                       description: Optional[str] = None, price: Optional[float] = None,
                       stock_quantity: Optional[int] = None, image: Optional[str] = None) -> ProductType:
        changes = _validate(ProductUpdate, title=title, description=description, price=price,
                            stock_quantity=stock_quantity, image=image)
        return ProductType.from_document(_storefront(info).catalog.update_product(_caller(info), id, changes))

    @strawberry.mutation
    def delete_product(self, info: Info, id: strawberry.ID) -> ProductType:
        return ProductType.from_document(_storefront(info).delete_product(_caller(info), id))


def _should_mask(error) -> bool:
    # Hide anything that is not a deliberate storefront error
    original = getattr(error, "original_error", None)
    return original is not None and not isinstance(original, StorefrontError)


schema = strawberry.Schema(
    query=Query,
    mutation=Mutation,
    extensions=[lambda: MaskErrors(should_mask_error=_should_mask)],
)
