import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pymongo.database import Database

from admin_routes import router as admin_router
from cart_routes import router as cart_router
from catalog import SORT_OPTIONS, get_product, list_products
from checkout_routes import router as checkout_router
from config import settings
from database import get_db
from errors import (
    CartFullError,
    CheckoutValidationError,
    ConfigurationError,
    ExternalServiceError,
    NotFoundError,
    ProductValidationError,
    StorageError,
    StoreError,
    WebhookVerificationError,
)
from logging_config import setup_logging
from storage import get_storage

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Jewellery Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(admin_router)

ERROR_STATUS = [
    (NotFoundError, 404),
    (CartFullError, 400),
    (CheckoutValidationError, 400),
    (ProductValidationError, 400),
    (WebhookVerificationError, 400),
    (ConfigurationError, 500),
    (ExternalServiceError, 500),
]


@app.exception_handler(StoreError)
def store_error_handler(request: Request, exc: StoreError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status, content={"detail": exc.message})


# ----- Health -----
@app.get("/")
def read_root():
    return {"message": "Jewellery Storefront API running"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                response["collections"] = db.list_collection_names()[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    response["database_url"] = "✅ Set" if settings.database_url else "❌ Not Set"
    response["stripe"] = "✅ Set" if settings.stripe_secret_key else "❌ Not Set"
    return response


# ----- Products -----
@app.get("/api/products")
def products(
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort: str = Query("newest"),
    limit: Optional[int] = Query(None, ge=1, le=100),
    featured: bool = False,
    db: Database = Depends(get_db),
):
    if sort not in SORT_OPTIONS:
        raise HTTPException(status_code=400, detail=f"Unknown sort option: {sort}")
    return list_products(
        db,
        category=category,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
        limit=limit,
        featured=featured,
    )


@app.get("/api/products/{product_id}")
def product_detail(product_id: str, db: Database = Depends(get_db)):
    return get_product(db, product_id)


# ----- Media -----
@app.get("/media/products/{path}")
def media(path: str, storage=Depends(get_storage)):
    try:
        data, content_type = storage.open(path)
    except StorageError:
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(content=data, media_type=content_type, headers={"Cache-Control": "public, max-age=3600"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
