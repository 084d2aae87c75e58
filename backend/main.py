import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional, Type

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from backend.database import (
    build_engine,
    build_session_factory,
    get_api_tokens,
    get_database_url,
    get_session,
    init_db,
)
from backend.models import REMOTE_TABLES, RemoteRowBase, UpsertRequest
from fintrack_sync.models.base import now_ms

logger = logging.getLogger("SyncBackend")

router = APIRouter()


def resolve_table(table: str) -> Type[RemoteRowBase]:
    if table not in REMOTE_TABLES:
        raise HTTPException(status_code=404, detail=f"Tabela '{table}' desconhecida.")
    return REMOTE_TABLES[table]


def current_user(request: Request) -> Optional[str]:
    """
    Dono da requisição, resolvido pelo token (token -> user_id).
    Sem tokens configurados o servidor roda aberto (desenvolvimento) e
    devolve None: o user_id vem do cliente.
    """
    tokens: Dict[str, str] = request.app.state.api_tokens
    if not tokens:
        return None
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    user_id = tokens.get(token) if scheme == "Bearer" else None
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido.")
    return user_id


@router.get("/")
async def root():
    return {
        "status": "online",
        "tables": list(REMOTE_TABLES.keys()),
        "time": now_ms(),
    }


# --- ENDPOINT GENÉRICO DE UPSERT ---
@router.post("/sync/{table}/upsert")
async def upsert_rows(
    table: str,
    payload: UpsertRequest,
    caller: Optional[str] = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Upsert por id dentro da partição do usuário, Last-Write-Wins por updated_at.
    Uma linha mais antiga que a gravada é ignorada; empate sobrescreve
    (reenvio idempotente). Nunca há merge de campos.
    """
    ModelClass = resolve_table(table)
    processed_ids = []
    ignored_ids = []

    # Cada usuário só escreve na própria partição
    foreign = [row.id for row in payload.rows if caller is not None and row.user_id != caller]
    if foreign:
        logger.warning(f"{table}: {caller} tentou gravar linhas de outro usuário: {foreign}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Linhas de outro usuário.")

    try:
        for row in payload.rows:
            existing = await session.get(ModelClass, {"id": row.id, "user_id": row.user_id})

            if existing is None:
                session.add(ModelClass(id=row.id, user_id=row.user_id, data=row.data, updated_at=row.updated_at))
            elif row.updated_at >= existing.updated_at:
                existing.data = row.data
                existing.updated_at = row.updated_at
                session.add(existing)
            else:
                ignored_ids.append(row.id)
                continue

            processed_ids.append(row.id)

        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"ERRO NO UPSERT ({table}): {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if ignored_ids:
        logger.info(f"{table}: {len(ignored_ids)} linhas mais antigas que as gravadas foram ignoradas")
    return {"processed_ids": processed_ids, "ignored_ids": ignored_ids, "status": "success", "table": table}


# --- ENDPOINT GENÉRICO DE PULL ---
@router.get("/sync/{table}")
async def pull_rows(
    table: str,
    user_id: Optional[str] = None,
    since: int = 0,
    caller: Optional[str] = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Linhas do usuário com updated_at > since. Com autenticação o
    parâmetro user_id é ignorado: vale o dono do token.
    """
    ModelClass = resolve_table(table)
    owner = caller or user_id
    if not owner:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id obrigatório.")

    try:
        statement = (
            select(ModelClass)
            .where(ModelClass.user_id == owner, ModelClass.updated_at > since)
            .order_by(ModelClass.updated_at)
        )
        result = await session.exec(statement)
        rows = result.all()
    except SQLAlchemyError as e:
        logger.error(f"ERRO NO PULL ({table}): {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "table": table,
        "rows": [row.model_dump() for row in rows],
        "server_time": now_ms(),
    }


def create_app(database_url: Optional[str] = None, api_tokens: Optional[Dict[str, str]] = None) -> FastAPI:
    """
    Fábrica da aplicação. Em produção:
        uvicorn --factory backend.main:create_app

    `api_tokens` mapeia token -> user_id (padrão: SYNC_API_TOKENS).
    """
    engine = build_engine(database_url or get_database_url())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Garante que as tabelas remotas existam
        await init_db(engine)
        yield
        await engine.dispose()

    app = FastAPI(title="FinTrack Sync - Servidor Central", lifespan=lifespan)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.api_tokens = api_tokens if api_tokens is not None else get_api_tokens()
    if not app.state.api_tokens:
        logger.warning("SYNC_API_TOKENS vazio: servidor sem autenticação, user_id vem do cliente")
    app.include_router(router)
    return app
