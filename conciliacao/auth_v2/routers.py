# conciliacao/auth_v2/routers.py
import logging

from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from conciliacao.database import get_db
import conciliacao.core.security as security
from conciliacao.schemas.all_schemas import Token, UserOut
from conciliacao.auth_v2.services import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


@router.post("/login", response_model=Token, status_code=status.HTTP_200_OK)
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """
    Authenticate user and return JWT token.
    """
    try:
        auth_response = await auth_service.authenticate_user(
            db, form_data.username, form_data.password, request.client.host if request.client else "unknown"
        )
        return Token(
            access_token=auth_response["access_token"],
            token_type=auth_response["token_type"]
        )
    except HTTPException as e:
        raise e
    except Exception as e:
        logger.error(f"Login failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred during login."
        )


@router.get("/me", response_model=UserOut)
def read_current_user(
    current_user: security.TokenData = Depends(security.get_current_user),
    db: Session = Depends(get_db)
):
    from conciliacao.crud.crud import crud_user  # Late import

    return crud_user.get(db, current_user.user_id)
