# conciliacao/auth_v2/services.py
import logging
from typing import Dict, Any

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from conciliacao.core.hashing import verify_password
from conciliacao.core.security import create_access_token

logger = logging.getLogger(__name__)


class AuthService:

    async def authenticate_user(self, db: Session, email: str, password: str, request_ip: str) -> Dict[str, Any]:
        from conciliacao.crud.crud import crud_user  # Late import

        user = crud_user.get_by_email(db, email)

        if not user or not user.is_active:
            logger.info(f"Login failed for '{email}' from {request_ip}: user not found or inactive.")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password."
            )

        if not verify_password(password, user.password_hash):
            logger.info(f"Login failed for '{email}' from {request_ip}: incorrect password.")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password."
            )

        access_token = create_access_token(
            data={"sub": user.email, "user_id": user.id, "role": user.role.value, "org_id": user.org_id}
        )
        logger.info(f"User {user.id} logged in from {request_ip}.")
        return {"access_token": access_token, "token_type": "bearer"}


auth_service = AuthService()
