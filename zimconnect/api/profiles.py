"""
ZimConnect — Profiles API

Own-profile CRUD, photo uploads, profile search and the privacy-masked
view of other users' profiles.
"""

from __future__ import annotations

from typing import List

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from zimconnect.api.deps import current_user_id, get_profile_service
from zimconnect.database import get_db
from zimconnect.models.profile import Profile
from zimconnect.schemas.profile import CandidateProfile, ProfileCreate, ProfileResponse, ProfileUpdate
from zimconnect.services.profile_service import ProfileService, decorate_profile

logger = structlog.get_logger("zimconnect.api.profiles")

router = APIRouter()

ALLOWED_PHOTO_TYPES = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}
MAX_PHOTOS_PER_UPLOAD = 6


# ──────────────────────────────────────────────────────────────────────────────
# POST / — Create own profile
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=ProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create the caller's profile",
)
async def create_profile(
    payload: ProfileCreate,
    user_id: str = Depends(current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    return await profiles.create_profile(user_id, payload, db)


# ──────────────────────────────────────────────────────────────────────────────
# GET /me, PUT /me — Own profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/me", response_model=ProfileResponse, summary="Get the caller's profile")
async def get_my_profile(
    user_id: str = Depends(current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    return await profiles.require_profile(user_id, db)


@router.put("/me", response_model=ProfileResponse, summary="Update the caller's profile")
async def update_my_profile(
    payload: ProfileUpdate,
    user_id: str = Depends(current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """Partial update; only the fields present in the body are applied."""
    changes = payload.model_dump(exclude_unset=True)
    return await profiles.update_profile(user_id, changes, db)


# ──────────────────────────────────────────────────────────────────────────────
# POST /me/photos — Upload photos
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/me/photos", response_model=ProfileResponse, summary="Upload profile photos")
async def upload_photos(
    files: List[UploadFile] = File(...),
    user_id: str = Depends(current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    if len(files) > MAX_PHOTOS_PER_UPLOAD:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_PHOTOS_PER_UPLOAD} photos per upload.",
        )

    uploads = []
    for upload in files:
        extension = ALLOWED_PHOTO_TYPES.get(upload.content_type or "")
        if extension is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported image type: {upload.content_type}",
            )
        uploads.append((await upload.read(), upload.content_type, extension))

    logger.info("upload_photos", user_id=user_id, count=len(uploads))
    return await profiles.add_photos(user_id, uploads, db)


@router.delete("/me/photos", response_model=ProfileResponse, summary="Remove a profile photo")
async def delete_photo(
    url: str = Query(..., min_length=1),
    user_id: str = Depends(current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    return await profiles.remove_photo(user_id, url, db)


# ──────────────────────────────────────────────────────────────────────────────
# GET /search — Name / location search
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/search", response_model=list[CandidateProfile], summary="Search profiles")
async def search_profiles(
    q: str = Query("", max_length=100),
    user_id: str = Depends(current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    db: AsyncSession = Depends(get_db),
) -> list[CandidateProfile]:
    return await profiles.search_profiles(user_id, q, db)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{profile_id} — Someone else's profile, privacy-masked
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/{profile_id}", response_model=CandidateProfile, summary="View a profile")
async def get_profile(
    profile_id: str,
    user_id: str = Depends(current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    db: AsyncSession = Depends(get_db),
) -> CandidateProfile:
    profile = await profiles.require_profile(profile_id, db)
    return decorate_profile(profile)
