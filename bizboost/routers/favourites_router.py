from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from bizboost.auth import commit_or_conflict
from bizboost.database import get_db
from bizboost.dependencies import get_current_user, require_member
from bizboost.errors import ValidationError
from bizboost.logging import get_logger
from bizboost.models import Favourite, User
from bizboost.schemas import FavouriteStatusResponse, FavouriteToggleResponse

router = APIRouter(prefix="/api/favourites", tags=["favourites"])
logger = get_logger(__name__)

BUSINESS_ID_MAX_LENGTH = 64


def _check_business_id(business_id: str) -> str:
    business_id = business_id.strip()
    if not business_id or len(business_id) > BUSINESS_ID_MAX_LENGTH:
        raise ValidationError("Invalid business id")
    return business_id


@router.get("/{business_id}", response_model=FavouriteStatusResponse)
def get_favourite(
    business_id: str,
    user: User = Depends(get_current_user),
):
    """
    Whether the caller has favourited a business. Always false for guests.
    """
    business_id = _check_business_id(business_id)
    if user.is_guest:
        return FavouriteStatusResponse(favourited=False)
    return FavouriteStatusResponse(favourited=business_id in user.favourite_ids)


@router.post("/{business_id}", response_model=FavouriteToggleResponse)
def toggle_favourite(
    business_id: str,
    user: User = Depends(require_member),
    db: Session = Depends(get_db),
):
    """
    Toggle favourite status for a business. Members only.
    """
    business_id = _check_business_id(business_id)

    existing = db.query(Favourite).filter(
        Favourite.user_id == user.id,
        Favourite.business_id == business_id,
    ).first()

    if existing is not None:
        db.delete(existing)
        favourited = False
    else:
        db.add(Favourite(user_id=user.id, business_id=business_id))
        favourited = True

    commit_or_conflict(db, "Favourite changed concurrently")
    logger.info("favourite_toggled", user_id=user.id, business_id=business_id, favourited=favourited)
    return FavouriteToggleResponse(success=True, favourited=favourited)
