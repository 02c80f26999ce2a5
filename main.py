import logging
import sys

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from strawberry.fastapi import GraphQLRouter

import settings
from auth import caller_from_header
from database import db
from errors import StorefrontError, UserInputError
from graphql_api import schema
from payments import create_payment_intent
from schemas import PaymentRequest
from services import Storefront

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = settings.LOG_LEVEL):
    """Configure logging for the entire application."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=settings.LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def create_app(database=None) -> FastAPI:
    app = FastAPI(title="Storefront API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    storefront = Storefront(database) if database is not None else None
    if storefront is None:
        logger.warning("No database configured; GraphQL operations will fail until DATABASE_URL is set")

    async def get_context(request: Request):
        return {
            "storefront": storefront,
            "caller": caller_from_header(request.headers.get("authorization")),
        }

    app.include_router(GraphQLRouter(schema, context_getter=get_context), prefix="/graphql")

    @app.get("/")
    def read_root():
        return {"message": "Storefront backend is running", "graphql": "/graphql"}

    @app.post("/api/payments/create-payment-intent")
    def payment_intent(payload: PaymentRequest):
        try:
            client_secret = create_payment_intent(payload.amount, payload.currency)
        except UserInputError as e:
            raise HTTPException(status_code=400, detail=e.message)
        except StorefrontError as e:
            raise HTTPException(status_code=500, detail=e.message)
        return {"client_secret": client_secret}

    @app.get("/test")
    def test_database():
        """Test endpoint to check if database is available and accessible"""
        response = {
            "backend": "Running",
            "database": "Not Available",
            "database_url": "Set" if settings.DATABASE_URL else "Not Set",
            "database_name": "Set" if settings.DATABASE_NAME else "Not Set",
            "connection_status": "Not Connected",
            "collections": [],
        }

        if database is None:
            return response

        response["database"] = "Available"
        response["connection_status"] = "Connected"
        try:
            response["collections"] = database.list_collection_names()[:10]
            response["database"] = "Connected & Working"
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            response["database"] = f"Connected but Error: {str(e)[:50]}"
        return response

    return app


setup_logging()
app = create_app(db)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
