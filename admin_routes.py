from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pymongo.database import Database

from admin import ImageUpload, delete_product, save_product, validate_product
from catalog import list_products
from database import get_db
from storage import get_storage

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _read_uploads(files: List[UploadFile]) -> List[ImageUpload]:
    uploads = []
    for f in files:
        if not f.filename:
            continue
        uploads.append(ImageUpload(filename=f.filename, data=f.file.read(), content_type=f.content_type))
    return uploads


@router.get("/products")
def admin_products(db: Database = Depends(get_db)):
    return list_products(db, sort="newest")


@router.post("/products", status_code=201)
def admin_create_product(
    name: str = Form(""),
    description: str = Form(""),
    price: str = Form(""),
    quantity: str = Form(""),
    category: str = Form("Ring"),
    reviews: Optional[str] = Form(None),
    featured: bool = Form(False),
    existing_images: List[str] = Form([]),
    images: List[UploadFile] = File([]),
    db: Database = Depends(get_db),
    storage=Depends(get_storage),
):
    product = validate_product(name, description, price, quantity, category, reviews, featured)
    return save_product(db, storage, product, existing_images, _read_uploads(images))


@router.put("/products/{product_id}")
def admin_update_product(
    product_id: str,
    name: str = Form(""),
    description: str = Form(""),
    price: str = Form(""),
    quantity: str = Form(""),
    category: str = Form("Ring"),
    reviews: Optional[str] = Form(None),
    featured: bool = Form(False),
    existing_images: List[str] = Form([]),
    images: List[UploadFile] = File([]),
    db: Database = Depends(get_db),
    storage=Depends(get_storage),
):
    product = validate_product(name, description, price, quantity, category, reviews, featured)
    return save_product(db, storage, product, existing_images, _read_uploads(images), product_id=product_id)


@router.delete("/products/{product_id}")
def admin_delete_product(product_id: str, db: Database = Depends(get_db), storage=Depends(get_storage)):
    delete_product(db, storage, product_id)
    return {"deleted": True, "id": product_id}
