# village/routes/auth.py
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from pydantic import BaseModel, Field

from village.config import SESSION_HOURS
from village.game.ledger import ResourceLedger
from village.game.locks import PlayerLocks
from village.game.store import VillageStore
from village.game.village import VillageState
from village.models.player import Player
from village.models.session import SessionToken
from village.routes.deps import get_clock, get_locks, get_store

log = logging.getLogger(__name__)

bearer_scheme = HTTPBearer()
router = APIRouter(prefix="/auth", tags=["auth"])

# Pi-friendly hashing (no native deps)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=32)
    password: str = Field(min_length=8, max_length=128)
    village_name: str = Field(default="Village", min_length=1, max_length=40)


class RegisterResponse(BaseModel):
    player_id: int
    username: str
    village_name: str


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime


class MeResponse(BaseModel):
    player_id: int
    username: str
    village_name: str


def get_current_player(
    creds: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    store: VillageStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Player:
    sess = store.find_session(creds.credentials)
    if not sess:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    if sess.expires_at <= clock():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")

    player = store.get_player(sess.player_id)
    if not player:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session player")

    return player


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> RegisterResponse:
    if store.find_player_by_username(payload.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")

    player = Player(
        username=payload.username,
        password_hash=pwd_context.hash(payload.password),
        village_name=payload.village_name,
        created_at=clock(),
    )
    store.add_player(player)
    store.commit()

    # Every player starts with counters and a town hall
    ResourceLedger(store, locks, clock).initialize(player.id)
    VillageState(store, locks, clock).ensure_town_hall(player.id)
    log.info("Player %d (%s) registered", player.id, player.username)

    return RegisterResponse(player_id=player.id, username=player.username, village_name=player.village_name)


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    store: VillageStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LoginResponse:
    player = store.find_player_by_username(payload.username)
    if not player or not pwd_context.verify(payload.password, player.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    token = secrets.token_hex(32)
    now = clock()
    expires_at = now + timedelta(hours=SESSION_HOURS)

    store.add_session(SessionToken(player_id=player.id, token=token, created_at=now, expires_at=expires_at))
    store.commit()

    return LoginResponse(token=token, expires_at=expires_at)


@router.get("/me", response_model=MeResponse)
def me(current_player: Player = Depends(get_current_player)) -> MeResponse:
    return MeResponse(
        player_id=current_player.id,
        username=current_player.username,
        village_name=current_player.village_name,
    )
