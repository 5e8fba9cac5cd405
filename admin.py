"""Admin product editor: validation, image upload and product create/update/delete."""
import json
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

from catalog import get_product
from database import PRODUCTS, create_document, parse_object_id, utcnow
from errors import ExternalServiceError, NotFoundError, ProductValidationError, StorageError
from schemas import CATEGORIES, Product, Review

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024
PRICE_RE = re.compile(r"^\d+(\.\d{0,2})?$")
QUANTITY_RE = re.compile(r"^\d+$")


@dataclass
class ImageUpload:
    filename: str
    data: bytes
    content_type: Optional[str] = None


def parse_reviews(raw: Optional[str]) -> List[Review]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError("reviews must be a list")
        return [Review.model_validate(r) for r in data]
    except (ValueError, ValidationError) as e:
        raise ProductValidationError("Each review needs a name and a text") from e


def validate_product(
    name: str,
    description: str,
    price: str,
    quantity: str,
    category: str = "Ring",
    reviews: Optional[str] = None,
    featured: bool = False,
) -> Product:
    name = (name or "").strip()
    description = (description or "").strip()
    price = (price or "").strip()
    quantity = (quantity or "").strip()

    if not name:
        raise ProductValidationError("Product name is required")
    if not description:
        raise ProductValidationError("Description is required")
    if not price or not PRICE_RE.match(price) or float(price) <= 0:
        raise ProductValidationError("Please enter a valid price")
    if not QUANTITY_RE.match(quantity):
        raise ProductValidationError("Please enter a valid quantity")
    if category not in CATEGORIES:
        raise ProductValidationError("Please choose a valid category")

    return Product(
        name=name,
        description=description,
        price=float(price),
        quantity=int(quantity),
        category=category,
        reviews=parse_reviews(reviews),
        featured=featured,
    )


def validate_upload(upload: ImageUpload) -> None:
    if not (upload.content_type or "").startswith("image/"):
        raise ProductValidationError("Please upload image files only")
    if len(upload.data) > MAX_IMAGE_BYTES:
        raise ProductValidationError("Image size should be less than 5MB")


def upload_image(storage, upload: ImageUpload) -> str:
    ext = upload.filename.rsplit(".", 1)[-1].lower() if "." in upload.filename else "bin"
    path = f"{int(time.time() * 1000)}_{uuid.uuid4().hex}.{ext}"
    try:
        storage.upload(path, upload.data, upload.content_type)
        return storage.get_public_url(path)
    except StorageError as e:
        logger.error("Error uploading image: %s", e)
        raise ExternalServiceError(f"Failed to upload image: {upload.filename}") from e


def save_product(
    db: Database,
    storage,
    product: Product,
    kept_images: Optional[List[str]] = None,
    uploads: Optional[List[ImageUpload]] = None,
    product_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a product, or update it when ``product_id`` is given.

    Kept URLs go through untouched and in order; each new upload is stored
    separately and its URL appended. On update with no images supplied at
    all, the stored images are kept.
    """
    kept_images = [u for u in (kept_images or []) if u]
    uploads = uploads or []

    existing = get_product(db, product_id) if product_id else None
    if not kept_images and not uploads and not (existing and existing.get("images")):
        raise ProductValidationError("Please upload at least one product image")
    for upload in uploads:
        validate_upload(upload)

    if kept_images or uploads:
        images = kept_images + [upload_image(storage, u) for u in uploads]
    else:
        images = list(existing["images"])

    data = product.model_dump()
    data["images"] = images
    try:
        if existing:
            data["updated_at"] = utcnow()
            db[PRODUCTS].update_one({"_id": parse_object_id(product_id)}, {"$set": data})
            logger.info("Updated product %s", product_id)
            return get_product(db, product_id)
        new_id = create_document(db, PRODUCTS, data)
    except PyMongoError as e:
        logger.error("Error saving product: %s", e)
        raise ExternalServiceError("Failed to save product. Please try again.") from e
    logger.info("Created product %s", new_id)
    return get_product(db, new_id)


def image_path_from_url(url: str) -> str:
    return url.rstrip("/").split("/")[-1]


def delete_product(db: Database, storage, product_id: str) -> None:
    """Delete a product and, best effort, each of its images."""
    product = get_product(db, product_id)

    for url in product.get("images") or []:
        path = image_path_from_url(url)
        if not path:
            continue
        try:
            storage.remove(path)
        except StorageError as e:
            logger.error("Error deleting image %s: %s", path, e)

    try:
        result = db[PRODUCTS].delete_one({"_id": parse_object_id(product_id)})
    except PyMongoError as e:
        logger.error("Error deleting product %s: %s", product_id, e)
        raise ExternalServiceError("Failed to delete product. Please try again.") from e
    if result.deleted_count == 0:
        raise NotFoundError("Product not found")
    logger.info("Deleted product %s", product_id)
