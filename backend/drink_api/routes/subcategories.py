"""
Subcategory routes.

Exposes the subcategory name → (subcategory_id, category_id) map that
scrapers use to fill in drink categories.
"""

from typing import Dict

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from drink_sync import DrinkSyncError

from ..services.database import drink_store

router = APIRouter(prefix="/api/subcategories", tags=["subcategories"])


class SubcategoryIds(BaseModel):
    subcategory_id: int
    category_id: int


class CategoryMapResponse(BaseModel):
    """Subcategory ids keyed by subcategory name."""
    subcategories: Dict[str, SubcategoryIds]
    total: int


@router.get("/", response_model=CategoryMapResponse)
def get_category_map():
    """Get the subcategory map."""
    try:
        category_map = drink_store.category_map()
    except DrinkSyncError as e:
        raise HTTPException(
            status_code=500,
            detail=f"Error fetching subcategories: {str(e)}"
        )

    return CategoryMapResponse(
        subcategories={
            name: SubcategoryIds(subcategory_id=ids[0], category_id=ids[1])
            for name, ids in category_map.items()
        },
        total=len(category_map),
    )
