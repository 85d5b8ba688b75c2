from fastapi import HTTPException, status, UploadFile
from supabase import Client
from config import get_supabase_admin_client, SUPABASE_STORAGE_BUCKET
import uuid
import os
import logging

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]
MAX_IMAGE_SIZE = 5 * 1024 * 1024


class ProductHelpers:
    """Helper functions for product image storage"""

    def __init__(self):
        self._admin_client = None

    @property
    def admin_client(self) -> Client:
        if self._admin_client is None:
            self._admin_client = get_supabase_admin_client()
        return self._admin_client

    async def upload_product_image(self, product_id: str, file: UploadFile) -> str:
        """
        Upload product image to Supabase Storage and return the public URL
        """
        if file.content_type not in ALLOWED_IMAGE_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File type {file.content_type} not allowed"
            )

        file_content = await file.read()
        if len(file_content) > MAX_IMAGE_SIZE:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="File size must be less than 5MB"
            )

        file_extension = os.path.splitext(file.filename)[1] if file.filename else '.jpg'
        unique_filename = f"products/{product_id}/{uuid.uuid4()}{file_extension}"

        try:
            bucket = self.admin_client.storage.from_(SUPABASE_STORAGE_BUCKET)
            bucket.upload(
                path=unique_filename,
                file=file_content,
                file_options={"content-type": file.content_type}
            )
            public_url = bucket.get_public_url(unique_filename)
        except Exception as e:
            logger.error(f"Upload error for product {product_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to upload image"
            )

        logger.info(f"Uploaded image for product {product_id}")
        return public_url

    def delete_product_image(self, image_url: str) -> bool:
        """
        Delete product image from Supabase Storage
        Only images stored in our bucket are removed; external URLs are left alone
        """
        marker = f"/storage/v1/object/public/{SUPABASE_STORAGE_BUCKET}/"
        if not image_url or marker not in image_url:
            return False

        file_path = image_url.split(marker, 1)[1].split("?", 1)[0]
        try:
            self.admin_client.storage.from_(SUPABASE_STORAGE_BUCKET).remove([file_path])
            return True
        except Exception as e:
            logger.error(f"Error deleting product image: {str(e)}")
            return False


product_helpers = ProductHelpers()
