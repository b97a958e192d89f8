# storefront/api/routers/users.py
from fastapi import APIRouter, Depends

from storefront.api.deps import get_user_service
from storefront.domain.schemas import ForgotPasswordIn, UserCreate, UserRead
from storefront.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/", response_model=UserRead, status_code=201)
def create_user(payload: UserCreate, svc: UserService = Depends(get_user_service)):
    return svc.create_user(payload)


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordIn, svc: UserService = Depends(get_user_service)):
    return svc.request_password_reset(payload.email)


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, svc: UserService = Depends(get_user_service)):
    return svc.get_user(user_id)
