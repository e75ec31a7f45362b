"""
Herb catalog: categories, products, stock, reviews and media.
"""

from __future__ import annotations

import logging
from typing import Optional

from ttm_backend.db import DbClient, Row
from ttm_backend.errors import ConflictError, NotFoundError, ValidationFailed
from ttm_backend.storage import StorageClient, media_key

logger = logging.getLogger(__name__)

MAX_HERB_IMAGES = 10
MAX_REVIEW_MEDIA = 5
MEDIA_UPLOAD_TTL_SECONDS = 900


def create_category(db: DbClient, name: str, description: Optional[str] = None) -> Row:
    return db.insert(
        "product_categories", {"name": name.strip(), "description": description}
    )


def list_categories(db: DbClient) -> list[Row]:
    return db.select("product_categories", order_by="name")


def _check_images(images: list[dict]) -> None:
    if len(images) > MAX_HERB_IMAGES:
        raise ValidationFailed(f"At most {MAX_HERB_IMAGES} images per product")
    if sum(1 for image in images if image.get("is_primary")) > 1:
        raise ValidationFailed("Only one image can be primary")


def _primary_image_url(images: list[dict]) -> Optional[str]:
    for image in images:
        if image.get("is_primary"):
            return image.get("url")
    return images[0].get("url") if images else None


def create_herb(db: DbClient, values: dict) -> Row:
    values = dict(values)
    images = values.get("images") or []
    _check_images(images)
    if values.get("category_id") and not db.get("product_categories", values["category_id"]):
        raise NotFoundError("Category not found")
    values["images"] = images
    values.setdefault("image_url", _primary_image_url(images))
    herb = db.insert("herbs", values)
    logger.info("Created herb %s (%s)", herb["id"], herb["name"])
    return herb


def get_herb(db: DbClient, herb_id: str) -> Row:
    herb = db.get("herbs", herb_id)
    if not herb:
        raise NotFoundError("Herb not found")
    return herb


def update_herb(db: DbClient, herb_id: str, changes: dict) -> Row:
    get_herb(db, herb_id)
    changes = dict(changes)
    if "images" in changes:
        images = changes["images"] or []
        _check_images(images)
        changes["images"] = images
        changes["image_url"] = _primary_image_url(images)
    if changes.get("category_id") and not db.get("product_categories", changes["category_id"]):
        raise NotFoundError("Category not found")
    return db.update("herbs", herb_id, changes)


def delete_herb(db: DbClient, storage: StorageClient, herb_id: str) -> None:
    if not db.delete("herbs", herb_id):
        raise NotFoundError("Herb not found")
    removed = storage.delete_prefix(f"herbs/{herb_id}/")
    if removed:
        logger.info("Removed %d stored images for herb %s", removed, herb_id)


def list_herbs(
    db: DbClient,
    *,
    query: Optional[str] = None,
    category_id: Optional[str] = None,
    in_stock_only: bool = False,
    limit: int = 100,
) -> list[Row]:
    return db.search_herbs(
        query=query, category_id=category_id, in_stock_only=in_stock_only, limit=limit
    )


def subscription_price(herb: Row) -> Optional[float]:
    """Retail price after the subscribe-and-save discount, or None when not offered."""
    price = herb.get("retail_price")
    discount = herb.get("subscription_discount_percentage")
    if not herb.get("subscription_enabled") or price is None or not discount:
        return None
    return round(price * (1 - discount / 100), 2)


def adjust_stock(db: DbClient, herb_id: str, delta: int) -> Row:
    if not db.adjust_stock(herb_id, delta):
        herb = get_herb(db, herb_id)
        raise ValidationFailed(
            f"Stock for {herb['name']} cannot go below zero. "
            f"Available: {herb['stock_quantity']}, Change: {delta}"
        )
    return get_herb(db, herb_id)


# Reviews


def create_review(
    db: DbClient, herb_id: str, patient_id: Optional[str], values: dict
) -> Row:
    get_herb(db, herb_id)
    media = values.get("media") or []
    if len(media) > MAX_REVIEW_MEDIA:
        raise ValidationFailed(f"At most {MAX_REVIEW_MEDIA} media files per review")
    try:
        return db.insert(
            "product_reviews",
            {**values, "herb_id": herb_id, "patient_id": patient_id, "media": media},
        )
    except ConflictError:
        raise ConflictError("You have already reviewed this product") from None


def list_reviews(db: DbClient, herb_id: str) -> list[Row]:
    return db.select(
        "product_reviews", where={"herb_id": herb_id}, order_by="created_at", descending=True
    )


def review_summary(reviews: list[Row]) -> dict:
    distribution = {star: 0 for star in range(1, 6)}
    for review in reviews:
        distribution[review["rating"]] += 1
    count = len(reviews)
    average = round(sum(r["rating"] for r in reviews) / count, 1) if count else 0.0
    return {"count": count, "average": average, "distribution": distribution}


# Media


def _media_type(content_type: str) -> str:
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("video/"):
        return "video"
    raise ValidationFailed("Only image or video files are allowed")


def upload_herb_image(
    db: DbClient,
    storage: StorageClient,
    herb_id: str,
    filename: str,
    data: bytes,
    content_type: str,
    is_primary: bool = False,
) -> Row:
    herb = get_herb(db, herb_id)
    if _media_type(content_type) != "image":
        raise ValidationFailed("Product media must be an image")
    images = list(herb.get("images") or [])
    if len(images) >= MAX_HERB_IMAGES:
        raise ValidationFailed(f"At most {MAX_HERB_IMAGES} images per product")

    path = media_key("herbs", herb_id, filename)
    storage.put(path, data, content_type)
    if is_primary or not images:
        images = [{**image, "is_primary": False} for image in images]
        is_primary = True
    images.append(
        {
            "path": path,
            "url": storage.url_for(path),
            "is_primary": is_primary,
            "display_order": len(images),
        }
    )
    return update_herb(db, herb_id, {"images": images})


def upload_review_media(
    db: DbClient,
    storage: StorageClient,
    review_id: str,
    filename: str,
    data: bytes,
    content_type: str,
) -> Row:
    review = db.get("product_reviews", review_id)
    if not review:
        raise NotFoundError("Review not found")
    media = list(review.get("media") or [])
    if len(media) >= MAX_REVIEW_MEDIA:
        raise ValidationFailed(f"At most {MAX_REVIEW_MEDIA} media files per review")
    media_type = _media_type(content_type)

    path = media_key("reviews", review_id, filename)
    storage.put(path, data, content_type)
    media.append({"path": path, "url": storage.url_for(path), "type": media_type})
    return db.update("product_reviews", review_id, {"media": media})


def media_upload_url(
    storage: StorageClient, prefix: str, owner_id: str, filename: str, content_type: str
) -> dict:
    if prefix not in ("herbs", "reviews"):
        raise ValidationFailed("Unknown media prefix")
    _media_type(content_type)
    path = media_key(prefix, owner_id, filename)
    return {
        "path": path,
        "upload_url": storage.upload_url_for(path, content_type, MEDIA_UPLOAD_TTL_SECONDS),
        "download_url": storage.url_for(path),
    }
