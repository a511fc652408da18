from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from bizboost.auth import create_guest, end_session
from bizboost.database import get_db
from bizboost.dependencies import get_current_user
from bizboost.errors import NotFoundError
from bizboost.models import User
from bizboost.schemas import (
    FavouritesResponse,
    GuestSessionResponse,
    MessageResponse,
    PublicProfileResponse,
    UserResponse,
)

router = APIRouter(prefix="/api/users", tags=["users"])

# Largest id an integer primary key can hold
MAX_USER_ID = 2 ** 63 - 1


def to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        role=user.role,
        username=user.username,
        email=user.email,
        name=user.name,
        avatar_url=user.avatar_url,
        favourites=user.favourite_ids,
        session_expires_at=user.session_expires_at,
        guest_expires_at=user.guest_expires_at,
        created_at=user.created_at,
    )


@router.post("/generate", response_model=GuestSessionResponse)
def generate_guest(db: Session = Depends(get_db)):
    """
    Create a guest with a random session token.
    """
    user = create_guest(db)
    return GuestSessionResponse(token=user.session_token, role=user.role, id=user.id)


@router.post("/logout", response_model=MessageResponse)
def logout(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    End the current session.

    Guests are removed entirely; members keep their account but lose the token.
    """
    end_session(db, user)
    return MessageResponse(message="Session ended")


@router.get("/me", response_model=UserResponse)
def get_me(user: User = Depends(get_current_user)):
    """
    The authenticated user's full profile.
    """
    return to_user_response(user)


@router.get("/favourites", response_model=FavouritesResponse)
def get_favourites(user: User = Depends(get_current_user)):
    # Guests have no favourites
    if user.is_guest:
        return FavouritesResponse(favourites=[])
    return FavouritesResponse(favourites=user.favourite_ids)


@router.get("/{user_id}", response_model=PublicProfileResponse)
def get_profile(
    user_id: str,
    viewer: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Another user's public profile.

    Malformed and unknown ids both give 404. Email is only shown to its owner.
    """
    if not (user_id.isascii() and user_id.isdigit()) or int(user_id) > MAX_USER_ID:
        raise NotFoundError("User not found")

    target = db.get(User, int(user_id))
    if target is None:
        raise NotFoundError("User not found")

    return PublicProfileResponse(
        id=target.id,
        role=target.role,
        username=target.username,
        name=target.name,
        email=target.email if target.id == viewer.id else None,
        avatar_url=target.avatar_url,
        favourites=target.favourite_ids,
    )
