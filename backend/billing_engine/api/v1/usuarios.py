"""Users API router — registration, login, profile CRUD."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.api.deps import get_db
from billing_engine.auth.jwt import create_token_pair
from billing_engine.models.user import User
from billing_engine.schemas.common import MessageResponse
from billing_engine.schemas.usuario import (
    LoginRequest,
    LoginResponse,
    UsuarioCreate,
    UsuarioResponse,
    UsuarioUpdate,
)
from billing_engine.services import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/usuarios", tags=["usuarios"])


@router.post(
    "",
    response_model=UsuarioResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a user",
)
async def create_usuario(body: UsuarioCreate, db: AsyncSession = Depends(get_db)) -> User:
    return await user_service.create_user(
        db,
        email=body.email,
        password=body.password,
        name=body.name,
        role=body.role,
        country=body.country,
    )


@router.post("/login", response_model=LoginResponse, summary="Log in with email and password")
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)) -> dict:
    """Return the user and a JWT token pair.

    Raises 401 if the credentials are wrong or the account is inactive.
    """
    user = await user_service.authenticate(db, body.email, body.password)
    if user is None:
        logger.warning("Failed login for %s", body.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    tokens = create_token_pair(str(user.id), user.role.value)
    return {"usuario": user, "tokens": tokens}


@router.get("", response_model=list[UsuarioResponse], summary="List users")
async def list_usuarios(db: AsyncSession = Depends(get_db)) -> list[User]:
    return await user_service.list_users(db)


@router.get("/{usuario_id}", response_model=UsuarioResponse, summary="Get a user by ID")
async def get_usuario(usuario_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> User:
    return await user_service.get_user(db, usuario_id)


@router.put("/{usuario_id}", response_model=UsuarioResponse, summary="Update a user")
async def update_usuario(
    usuario_id: uuid.UUID,
    body: UsuarioUpdate,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Partially update a user. Only explicitly provided fields are changed."""
    return await user_service.update_user(db, usuario_id, body.model_dump(exclude_unset=True))


@router.delete("/{usuario_id}", response_model=MessageResponse, summary="Delete a user")
async def delete_usuario(usuario_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> dict:
    """Delete a user, or deactivate it when it has historic subscriptions.

    Raises 409 while the user holds a live subscription.
    """
    deleted = await user_service.delete_user(db, usuario_id)
    return {"mensaje": "Usuario eliminado" if deleted else "Usuario desactivado"}
