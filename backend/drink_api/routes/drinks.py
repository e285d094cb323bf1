"""
Drink routes.

Endpoints for syncing scraped drinks into the products table and for
looking drinks up by checksum.
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from drink_sync import DrinkSyncError, checksum_text, generate_checksum

from ..services.database import StoreUnavailableError, drink_store

router = APIRouter(prefix="/api/drinks", tags=["drinks"])


class SyncRequest(BaseModel):
    """Batch of scraped drinks.

    Drinks are plain objects so a single malformed drink is skipped by the
    sync instead of failing the whole request.
    """
    drinks: List[Dict[str, Any]]


class SyncResponse(BaseModel):
    """Counts for the synced batch."""
    checked: int
    inserted: int
    updated: int
    skipped: int


class ChecksumRequest(BaseModel):
    """Fields that make up a drink checksum."""
    href: str
    price: Union[int, float, str]
    img: str


class ChecksumResponse(BaseModel):
    checksum: str


class StoredDrink(BaseModel):
    """Drink row from the products table.

    price and volume are kept as scraped ("12.90", "0,7 l", "330").
    """
    name: str
    href: str
    price: Union[str, float]
    img: str
    volume: Union[str, float]
    category_id: int
    subcategory_id: Optional[int] = None
    abv: Optional[float] = None
    retailer: Optional[str] = None
    checksum: Optional[str] = None
    currently_available: bool
    last_available: Optional[str] = None


def _store_error(e: DrinkSyncError, action: str) -> HTTPException:
    status_code = 503 if isinstance(e, StoreUnavailableError) else 500
    return HTTPException(status_code=status_code, detail=f"{action}: {str(e)}")


@router.post("/sync", response_model=SyncResponse)
def sync_drinks(request: SyncRequest):
    """
    Insert, update or skip every drink in the batch.

    Returns:
        Batch counts; invalid drinks and per-drink database errors are
        counted as skipped.
    """
    try:
        result = drink_store.sync(request.drinks)
    except DrinkSyncError as e:
        raise _store_error(e, "Sync failed")

    return SyncResponse(**result.to_dict())


@router.post("/checksum", response_model=ChecksumResponse)
def drink_checksum(request: ChecksumRequest):
    """Compute the checksum a drink would be stored with."""
    text = checksum_text(request.href, request.price, request.img)
    return ChecksumResponse(checksum=generate_checksum(text))


@router.get("/checksum/{checksum}", response_model=StoredDrink)
def get_drink(checksum: str):
    """
    Get the stored drink with a matching checksum.

    Used by scrapers to check whether a drink changed since the last sync.
    """
    try:
        row = drink_store.find(checksum)
    except DrinkSyncError as e:
        raise _store_error(e, "Error fetching drink")

    if not row:
        raise HTTPException(
            status_code=404,
            detail=f"Drink not found: {checksum}"
        )

    row['currently_available'] = bool(row.get('currently_available'))
    if row.get('last_available') is not None:
        row['last_available'] = str(row['last_available'])
    return StoredDrink(**row)
