from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Query, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import ValidationError as SchemaValidationError
from config import get_db, INTERNAL_SECRET, CATALOG_CACHE_ENABLED
from models import UserProfile, Product
from routers.auth.auth import get_current_profile
from dependencies.rbac import (
    require_product_read, require_product_write, require_product_delete,
    require_seller, require_retailer
)
from services.catalog import (
    CatalogFilters, ListingCache, group_listings, filter_groups, category_order
)
from services.lifecycle import Role
from services.stores import ProductStore, as_uuid
from utils.errors import MarketplaceError, ValidationError
from utils.response_helpers import safe_model_validate
from .helpers import product_helpers
from .schemas import (
    ProductCreate, ProductUpdate, ProductResponse, ProductWithSellerResponse, ProductListResponse,
    ProductImageUpload, CatalogResponse, ProductChangeEvent, ProductChangeResponse
)
from typing import Optional
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])


def with_seller(product: Product, seller: Optional[UserProfile]) -> ProductWithSellerResponse:
    product_dict = safe_model_validate(ProductResponse, product).model_dump()
    product_dict["seller_name"] = seller.display_name if seller else None
    return ProductWithSellerResponse.model_validate(product_dict)


async def _owned_product(store: ProductStore, product_id, profile: UserProfile) -> Product:
    product = await store.get(product_id)
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )
    if product.seller_id != profile.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage your own products"
        )
    return product


async def catalog_listings(request: Request, db: AsyncSession):
    """Listings for the catalog, from the warm listing cache when enabled"""
    store = ProductStore(db)
    if not CATALOG_CACHE_ENABLED:
        return await store.catalog_listings()

    cache: ListingCache = request.app.state.listing_cache
    if not cache.is_warm:
        cache.load(await store.catalog_listings())
    return cache.listings()


# =================
# CATALOG (CUSTOMERS)
# =================

@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog(
    request: Request,
    search: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    exclude_out_of_stock: bool = Query(False),
    category: Optional[str] = Query(None, description="Category name, 'Local Specialties' or 'all'"),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_product_read)
):
    """
    Products grouped by name across sellers, nearest seller first.
    The buyer location defaults to the stored profile location.
    """
    try:
        if lat is None or lng is None:
            lat, lng = profile.location_lat, profile.location_lng

        groups = group_listings(await catalog_listings(request, db), lat, lng)
        filters = CatalogFilters(
            search=search,
            min_price=min_price,
            max_price=max_price,
            exclude_out_of_stock=exclude_out_of_stock,
            category=category
        )
        groups = filter_groups(groups, filters)

        return CatalogResponse(products=groups, categories=category_order(groups), total=len(groups))

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error building catalog: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve catalog"
        )


@router.get("/wholesale", response_model=ProductListResponse)
async def get_wholesale_products(
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_product_read),
    __: bool = Depends(require_retailer)
):
    """Wholesale listings retailers can request stock from"""
    try:
        rows = await ProductStore(db).with_sellers(Product.is_bulk.is_(True), Product.stock > 0)
        products = [with_seller(product, seller) for product, seller in rows]
        return ProductListResponse(products=products, total=len(products))

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error getting wholesale products: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve wholesale products"
        )


@router.post("/changes", response_model=ProductChangeResponse)
async def apply_product_change(
    event: ProductChangeEvent,
    request: Request,
    x_internal_secret: str = Header(...),
    db: AsyncSession = Depends(get_db)
):
    """Database webhook: keep the listing cache in step with the products table"""
    if x_internal_secret != INTERNAL_SECRET:
        raise HTTPException(status_code=403, detail="Forbidden")

    cache: ListingCache = request.app.state.listing_cache
    if event.table != "products":
        return ProductChangeResponse(applied=False, cached_listings=len(cache))

    seller = None
    record = event.record or {}
    try:
        if event.type.upper() != "DELETE" and record.get("seller_id"):
            seller_profile = await db.get(UserProfile, as_uuid(record["seller_id"]))
            if seller_profile:
                seller = {
                    "seller_name": seller_profile.display_name,
                    "seller_lat": seller_profile.location_lat,
                    "seller_lng": seller_profile.location_lng,
                }

        cache.apply_change(event.type, event.record, event.old_record, seller=seller)
    except (ValueError, SchemaValidationError) as e:
        logger.warning(f"Rejected product change event: {str(e)}")
        raise ValidationError(f"Unusable change event: {event.type}")

    return ProductChangeResponse(applied=True, cached_listings=len(cache))


# =================
# SELLER INVENTORY
# =================

@router.get("/my-products", response_model=ProductListResponse)
async def get_my_products(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_product_read),
    __: bool = Depends(require_seller)
):
    """Current seller's own listings"""
    try:
        products = await ProductStore(db).query(Product.seller_id == profile.id)
        items = [with_seller(product, profile) for product in products]
        return ProductListResponse(products=items, total=len(items))

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error getting products: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve products"
        )


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_data: ProductCreate,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_product_write),
    __: bool = Depends(require_seller)
):
    """Add a listing; wholesaler listings are bulk listings for stock orders"""
    try:
        product = await ProductStore(db).create(
            seller_id=profile.id,
            is_bulk=profile.role == Role.WHOLESALER.value,
            **product_data.model_dump()
        )
        await db.commit()
        logger.info(f"Seller {profile.id} listed {product.name}")
        return safe_model_validate(ProductResponse, product)

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error creating product: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create product"
        )


@router.get("/{product_id}", response_model=ProductWithSellerResponse)
async def get_product(
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_product_read)
):
    try:
        product = await ProductStore(db).get(product_id)
        if not product:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Product not found"
            )
        seller = await db.get(UserProfile, product.seller_id)
        return with_seller(product, seller)

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error getting product {product_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve product"
        )


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: uuid.UUID,
    product_update: ProductUpdate,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_product_write),
    __: bool = Depends(require_seller)
):
    """Update product (only by owner)"""
    try:
        store = ProductStore(db)
        product = await _owned_product(store, product_id, profile)
        await store.update(product, **product_update.model_dump(exclude_unset=True))
        await db.commit()
        return safe_model_validate(ProductResponse, product)

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error updating product: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update product"
        )


@router.delete("/{product_id}")
async def delete_product(
    product_id: uuid.UUID,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_product_delete),
    __: bool = Depends(require_seller)
):
    """Delete product (only by owner)"""
    try:
        store = ProductStore(db)
        product = await _owned_product(store, product_id, profile)
        image_url = product.image_url
        await store.delete(product)
        await db.commit()

        if image_url:
            product_helpers.delete_product_image(image_url)

        return {"message": "Product deleted successfully"}

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error deleting product: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete product"
        )


@router.post("/{product_id}/upload-image", response_model=ProductImageUpload)
async def upload_product_image(
    product_id: uuid.UUID,
    file: UploadFile = File(..., description="Product image file (JPEG, PNG, GIF, or WebP, max 5MB)"),
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_product_write),
    __: bool = Depends(require_seller)
):
    """Upload product image"""
    try:
        store = ProductStore(db)
        product = await _owned_product(store, product_id, profile)
        image_url = await product_helpers.upload_product_image(str(product.id), file)

        old_image_url = product.image_url
        await store.update(product, image_url=image_url)
        await db.commit()

        if old_image_url:
            product_helpers.delete_product_image(old_image_url)

        return ProductImageUpload(image_url=image_url, message="Product image uploaded successfully")

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error uploading product image: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload product image"
        )
