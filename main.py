"""
=============================================================================
MAIN.PY — La API de Goal Tracker
=============================================================================
Este archivo define TODOS los endpoints de la API REST.

Organización por secciones:
  1. USERS         → Registro, login, lista de usuarios
  2. GOALS         → CRUD de objetivos y registro de tiempo por día
  3. COMPETITIONS  → Lista, detalle, crear, editar, borrar, abandonar
  4. COMPETITION TIME → Añadir/unirse, quitar, desglose, borrados sincronizados
  5. INVITATIONS   → Invitar, ver, aceptar, rechazar
  6. FRIENDS       → Amigos y perfil compartido

Todas las respuestas llevan {"success": true/false}. Los errores salen
siempre como {"success": false, "error": "..."} con su código HTTP:
  400 datos inválidos · 403 sin permiso · 404 no existe · 500 error inesperado
"""

import logging
import traceback
from datetime import datetime, date, timedelta
from contextlib import asynccontextmanager
from typing import Optional

from email_validator import validate_email, EmailNotValidError
from fastapi import FastAPI, Depends, HTTPException, status, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, or_, exists
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import get_db, init_db
from models import *
from schemas import *
from auth import hash_password, verify_password, create_access_token, get_token_user_id, ensure_acting_user
from goals import get_date_range, upsert_completion, goals_in_period
from competition import (
    CompetitionError, get_competition, is_member, compute_user_total,
    build_leaderboard, user_rank, join_competition, log_time, remove_time,
    delete_manual_log, delete_goal_completion, daily_breakdown
)

# ─────────────────────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)
logger = logging.getLogger("goaltracker.api")


# ─────────────────────────────────────────────────────────────────────────────
# LIFESPAN (Arranque y apagado)
# ─────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Al arrancar crea las tablas que falten."""
    logger.info("🚀 Arrancando Goal Tracker...")
    init_db()
    logger.info("✅ Base de datos inicializada")

    yield

    logger.info("👋 Apagado completo")


# ─────────────────────────────────────────────────────────────────────────────
# APLICACIÓN FASTAPI
# ─────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Goal Tracker API",
    description="Objetivos, registro de tiempo y competiciones entre amigos",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# MANEJO DE ERRORES
# ─────────────────────────────────────────────────────────────────────────────
# Cualquier error termina en el mismo sobre JSON que el cliente enseña
# tal cual en un modal.

def error_response(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers
    )


@app.exception_handler(CompetitionError)
async def competition_error_handler(request: Request, exc: CompetitionError):
    logger.info(f"⚠️ {request.method} {request.url.path} → {exc.status_code}: {exc.message}")
    return error_response(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Datos que no pasan Pydantic → 400 con el primer campo que falla"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(
        str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")
    )
    message = f"Campo obligatorio o inválido: {field}" if field else "Datos inválidos"
    if first.get("msg"):
        message += f" ({first['msg']})"
    return error_response(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Captura errores no manejados y devuelve el mensaje real"""
    logger.error(f"❌ Error no manejado en {request.url}: {exc}\n{traceback.format_exc()}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


# =============================================================================
# ===================== HEALTH CHECK ==========================================
# =============================================================================

@app.get("/api/health", tags=["Health"])
def health_check():
    """Verifica que la API está viva"""
    return {"ok": True, "ts": datetime.utcnow().isoformat()}


# =============================================================================
# ===================== SECCIÓN 1: USERS ======================================
# =============================================================================

def _as_email(value: str) -> Optional[str]:
    """Email normalizado si `value` es un email, None si no lo es"""
    try:
        return validate_email(value, check_deliverability=False).normalized
    except EmailNotValidError:
        return None


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    return user


@app.post("/api/register", tags=["Users"])
def register(data: UserRegister, db: Session = Depends(get_db)):
    """
    Registra un usuario nuevo.

    Flujo:
      1. Email y nombre de usuario únicos
      2. Hashear la contraseña
      3. Crear el usuario y devolver su id + token
    """
    username = data.username.strip()
    if db.query(User).filter(User.email == data.email).first():
        raise HTTPException(status_code=400, detail="Este email ya está registrado")
    if db.query(User).filter(func.lower(User.username) == username.lower()).first():
        raise HTTPException(status_code=400, detail="Nombre de usuario no disponible")

    user = User(
        email=data.email,
        username=username,
        password_hash=hash_password(data.password)
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"👤 Nuevo usuario registrado: {user.username} ({user.email})")
    return {
        "success": True,
        "userId": user.id,
        "token": create_access_token(user.id, user.username)
    }


@app.post("/api/login", tags=["Users"])
def login(data: UserLogin, db: Session = Depends(get_db)):
    """Inicia sesión con email O nombre de usuario + contraseña"""
    login_name = data.username.strip()
    email = _as_email(login_name)
    if email:
        user = db.query(User).filter(User.email == email).first()
    else:
        user = db.query(User).filter(User.username == login_name).first()

    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email/usuario o contraseña incorrectos"
        )

    return {
        "success": True,
        "userId": user.id,
        "username": user.username,
        "email": user.email,
        "token": create_access_token(user.id, user.username)
    }


@app.get("/api/users", tags=["Users"])
def list_users(db: Session = Depends(get_db)):
    """Todos los usuarios (id + nombre)"""
    users = db.query(User).order_by(User.id).all()
    return {"success": True, "users": [UserResponse.model_validate(u).model_dump() for u in users]}


# =============================================================================
# ===================== SECCIÓN 2: GOALS ======================================
# =============================================================================

def _get_own_goal(db: Session, goal_id: int, user_id: int) -> Goal:
    goal = db.query(Goal).filter(Goal.id == goal_id).first()
    if not goal:
        raise HTTPException(status_code=404, detail="Objetivo no encontrado")
    if goal.user_id != user_id:
        raise HTTPException(status_code=403, detail="Este objetivo no es tuyo")
    return goal


@app.post("/api/goals", tags=["Goals"])
def create_goal(
    data: GoalCreate,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Crea un objetivo. El fin del periodo se calcula según el tipo."""
    ensure_acting_user(data.user_id, token_user_id)
    _get_user_or_404(db, data.user_id)

    try:
        start, end = get_date_range(data.type, data.start_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    goal = Goal(
        user_id=data.user_id,
        title=data.title,
        description=data.description,
        duration_minutes=data.duration_minutes,
        type=data.type,
        start_date=start,
        end_date=end
    )
    db.add(goal)
    db.commit()
    db.refresh(goal)

    logger.info(f"➕ Objetivo creado: {goal.title} ({goal.type}, usuario {goal.user_id})")
    return {"success": True, "goalId": goal.id, "goal": GoalResponse.model_validate(goal).model_dump()}


@app.get("/api/goals/{user_id}", tags=["Goals"])
def list_goals(
    user_id: int,
    on_date: Optional[date] = Query(default=None, alias="date"),
    goal_type: Optional[str] = Query(default=None, alias="type"),
    db: Session = Depends(get_db)
):
    """
    Objetivos del usuario. Con ?date=YYYY-MM-DD&type=weekly devuelve solo
    los que se solapan con esa semana (o día / mes).
    """
    try:
        goals = goals_in_period(db, user_id, goal_type, on_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "goals": [GoalResponse.model_validate(g).model_dump() for g in goals]}


@app.post("/api/goals/{goal_id}/complete", tags=["Goals"])
def complete_goal(
    goal_id: int, data: GoalCompletionCreate,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Registra (o sobrescribe) el tiempo de un objetivo para un día"""
    ensure_acting_user(data.user_id, token_user_id)
    goal = _get_own_goal(db, goal_id, data.user_id)

    completion = upsert_completion(db, goal, data.date, data.duration_minutes)
    return {"success": True, "completion": GoalCompletionResponse.model_validate(completion).model_dump()}


@app.get("/api/goals/{goal_id}/completions", tags=["Goals"])
def list_goal_completions(goal_id: int, db: Session = Depends(get_db)):
    """Todos los registros de un objetivo"""
    completions = db.query(GoalCompletion).filter(
        GoalCompletion.goal_id == goal_id
    ).order_by(GoalCompletion.completion_date).all()
    return {
        "success": True,
        "completions": [GoalCompletionResponse.model_validate(c).model_dump() for c in completions]
    }


@app.delete("/api/goals/{goal_id}", tags=["Goals"])
def delete_goal(
    goal_id: int, data: UserAction,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Elimina un objetivo y todos sus registros"""
    ensure_acting_user(data.user_id, token_user_id)
    goal = _get_own_goal(db, goal_id, data.user_id)

    db.delete(goal)
    db.commit()
    logger.info(f"🗑️ Objetivo eliminado: {goal.title} ({goal_id})")
    return {"success": True}


# =============================================================================
# ===================== SECCIÓN 3: COMPETITIONS ===============================
# =============================================================================
# OJO con el orden: GET /api/competition/{competition_id} está al final de
# la sección 5, después de /api/competition/invitations.

@app.get("/api/competitions", tags=["Competitions"])
def list_competitions(user_id: int = Query(alias="userId"), db: Session = Depends(get_db)):
    """
    Tarjetas de las competiciones en las que participa el usuario
    (creador o con algún registro, aunque sea de 0 min).
    """
    joined = exists().where(
        CompetitionLog.competition_id == Competition.id,
        CompetitionLog.user_id == user_id
    )
    competitions = db.query(Competition).filter(
        or_(Competition.creator_id == user_id, joined)
    ).order_by(Competition.created_at.desc(), Competition.id.desc()).all()

    items = []
    for c in competitions:
        leaderboard = build_leaderboard(db, c)
        items.append({
            "id": c.id,
            "title": c.title,
            "description": c.description or "",
            "totalTime": sum(e["total_minutes"] for e in leaderboard),
            "participantCount": len(leaderboard),
            "hasUserJoined": True,
            "isCreator": c.creator_id == user_id,
            "userMinutes": compute_user_total(db, user_id, c.id)["total"],
            "userRank": user_rank(leaderboard, user_id),
        })

    return JSONResponse(
        content={"success": True, "competitions": items},
        headers={"Cache-Control": "no-store"}
    )


@app.post("/api/competition", tags=["Competitions"])
def create_competition(
    data: CompetitionCreate,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Crea una competición. El creador queda unido automáticamente."""
    ensure_acting_user(data.user_id, token_user_id)
    if not data.title.strip():
        raise HTTPException(status_code=400, detail="El título es obligatorio")
    _get_user_or_404(db, data.user_id)

    competition = Competition(
        creator_id=data.user_id,
        title=data.title,
        description=data.description or ""
    )
    db.add(competition)
    db.commit()
    db.refresh(competition)

    join_competition(db, data.user_id, competition)

    logger.info(f"🏁 Competición creada: '{competition.title}' ({competition.id}) por usuario {data.user_id}")
    return {"success": True, "competitionId": competition.id}


@app.post("/api/competition/{competition_id}/update", tags=["Competitions"])
def update_competition(
    competition_id: int, data: CompetitionUpdate,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Solo el creador puede cambiar título y descripción"""
    ensure_acting_user(data.user_id, token_user_id)
    competition = get_competition(db, competition_id)
    if competition.creator_id != data.user_id:
        raise HTTPException(status_code=403, detail="Solo el creador puede editar esta competición.")

    update_data = data.model_dump(exclude_unset=True, exclude={"user_id"})
    if not update_data:
        raise HTTPException(status_code=400, detail="No hay nada que actualizar")

    if "title" in update_data and not (update_data["title"] or "").strip():
        raise HTTPException(status_code=400, detail="El título es obligatorio")

    for key, value in update_data.items():
        setattr(competition, key, value if value is not None else "")

    db.commit()
    return {"success": True}


@app.delete("/api/competition/{competition_id}", tags=["Competitions"])
def delete_competition(
    competition_id: int, data: UserAction,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Borra la competición con todos sus registros e invitaciones"""
    ensure_acting_user(data.user_id, token_user_id)
    competition = get_competition(db, competition_id)
    if competition.creator_id != data.user_id:
        raise HTTPException(status_code=403, detail="Solo el creador puede borrar esta competición.")

    db.delete(competition)
    db.commit()
    logger.info(f"🗑️ Competición eliminada: '{competition.title}' ({competition_id})")
    return {"success": True}


@app.post("/api/competition/leave", tags=["Competitions"])
def leave_competition(
    data: CompetitionMembership,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Abandonar = borrar todos tus registros e invitaciones de la competición"""
    ensure_acting_user(data.user_id, token_user_id)
    competition = get_competition(db, data.competition_id)
    if competition.creator_id == data.user_id:
        raise HTTPException(
            status_code=400,
            detail="El creador no puede abandonar su competición. Bórrala en su lugar."
        )

    db.query(CompetitionLog).filter(
        CompetitionLog.competition_id == competition.id,
        CompetitionLog.user_id == data.user_id
    ).delete(synchronize_session=False)
    db.query(CompetitionInvitation).filter(
        CompetitionInvitation.competition_id == competition.id,
        CompetitionInvitation.invitee_id == data.user_id
    ).delete(synchronize_session=False)
    db.commit()

    logger.info(f"🚪 Usuario {data.user_id} abandona '{competition.title}'")
    return {"success": True}


# =============================================================================
# ===================== SECCIÓN 4: COMPETITION TIME ===========================
# =============================================================================

@app.post("/api/competition/log", tags=["Competition Time"])
def add_competition_time(
    data: CompetitionLogCreate,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """
    Añade minutos a la competición.

    Con durationMinutes = 0 y sin ser miembro → te une a la competición
    y responde {"joined": true}. Con minutos > 0 sin ser miembro → 403.
    """
    ensure_acting_user(data.user_id, token_user_id)
    log, joined = log_time(db, data.user_id, data.competition_id, data.duration_minutes, data.logged_date)

    if joined:
        return {"success": True, "joined": True}
    return {"success": True, "logId": log.id}


@app.post("/api/competition/remove", tags=["Competition Time"])
def remove_competition_time(
    data: CompetitionRemove,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Quita minutos (añade un registro negativo). Nunca más de lo que tienes."""
    ensure_acting_user(data.user_id, token_user_id)
    log = remove_time(db, data.user_id, data.competition_id, data.duration_minutes)

    return {
        "success": True,
        "logId": log.id,
        "totalMinutes": compute_user_total(db, data.user_id, data.competition_id)["total"]
    }


@app.get("/api/competition/{competition_id}/participant/{user_id}", tags=["Competition Time"])
def get_participant_details(competition_id: int, user_id: int, db: Session = Depends(get_db)):
    """Desglose por días de un participante (modal del ranking)"""
    get_competition(db, competition_id)
    totals = compute_user_total(db, user_id, competition_id)
    daily_logs = daily_breakdown(totals)

    return {
        "success": True,
        "dailyLogs": daily_logs,
        "totalMinutes": totals["total"],
        "manualMinutes": totals["manual_total"],
        "goalMinutes": totals["goal_total"],
        "daysActive": len(daily_logs)
    }


@app.delete("/api/competition/log/{log_id}", tags=["Competition Time"])
def delete_competition_log(
    log_id: int, data: UserAction,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Borra un registro manual (y su pareja en el objetivo con el mismo título, si la hay)"""
    ensure_acting_user(data.user_id, token_user_id)
    result = delete_manual_log(db, log_id, data.user_id)

    return {
        "success": True,
        "deletedLogId": result["deleted_log_id"],
        "syncedCompletionId": result["synced_completion_id"]
    }


@app.delete("/api/competition/goal-completion/{goal_id}/{completion_date}", tags=["Competition Time"])
def delete_competition_goal_completion(
    goal_id: int, completion_date: date, data: UserAction,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Borra el tiempo de un objetivo en un día (y su pareja en la competición, si la hay)"""
    ensure_acting_user(data.user_id, token_user_id)
    result = delete_goal_completion(db, goal_id, completion_date, data.user_id)

    return {
        "success": True,
        "deletedCompletionId": result["deleted_completion_id"],
        "syncedLogId": result["synced_log_id"]
    }


# =============================================================================
# ===================== SECCIÓN 5: INVITATIONS ================================
# =============================================================================

@app.post("/api/competition/invite", tags=["Invitations"])
def invite_to_competition(
    data: InvitationCreate,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Invita a un usuario (por nombre, sin distinguir mayúsculas)"""
    ensure_acting_user(data.inviter_id, token_user_id)
    competition = get_competition(db, data.competition_id)
    if not is_member(db, data.inviter_id, competition.id):
        raise HTTPException(status_code=403, detail="Solo los participantes pueden invitar.")

    invitee = db.query(User).filter(
        func.lower(User.username) == data.invitee_username.strip().lower()
    ).first()
    if not invitee:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")

    if is_member(db, invitee.id, competition.id):
        raise HTTPException(status_code=400, detail="Este usuario ya está en la competición")

    pending = db.query(CompetitionInvitation).filter(
        CompetitionInvitation.competition_id == competition.id,
        CompetitionInvitation.invitee_id == invitee.id,
        CompetitionInvitation.status == RequestStatus.pending.value
    ).first()
    if pending:
        raise HTTPException(status_code=400, detail="Invitación ya enviada")

    db.add(CompetitionInvitation(
        competition_id=competition.id,
        inviter_id=data.inviter_id,
        invitee_username=invitee.username,
        invitee_id=invitee.id,
        status=RequestStatus.pending.value
    ))
    db.commit()

    logger.info(f"✉️ Invitación a '{competition.title}' para {invitee.username}")
    return {"success": True, "message": f"Invitación enviada a {invitee.username}"}


@app.get("/api/competition/invitations", tags=["Invitations"])
def list_invitations(
    user_id: Optional[int] = Query(default=None, alias="userId"),
    username: Optional[str] = Query(default=None),
    db: Session = Depends(get_db)
):
    """
    Invitaciones pendientes del usuario. Se buscan por id O por nombre
    (hay filas antiguas sin invitee_id).
    """
    username = (username or "").strip()
    if not user_id and not username:
        raise HTTPException(status_code=400, detail="Hace falta userId o username")

    conditions = []
    if user_id:
        conditions.append(CompetitionInvitation.invitee_id == user_id)
    if username:
        conditions.append(func.lower(CompetitionInvitation.invitee_username) == username.lower())
    invitee_filter = or_(*conditions)

    rows = db.query(CompetitionInvitation).join(
        Competition, Competition.id == CompetitionInvitation.competition_id
    ).filter(
        CompetitionInvitation.status == RequestStatus.pending.value,
        invitee_filter
    ).order_by(CompetitionInvitation.created_at.desc(), CompetitionInvitation.id.desc()).all()

    invitations = [
        InvitationResponse(
            id=inv.id,
            competition_id=inv.competition_id,
            inviter_id=inv.inviter_id,
            invitee_username=inv.invitee_username,
            status=inv.status,
            created_at=inv.created_at,
            competition_title=inv.competition.title,
            competition_description=inv.competition.description,
            inviter_username=inv.inviter.username
        ).model_dump()
        for inv in rows
    ]
    return {"success": True, "invitations": invitations}


def _get_pending_invitation(db: Session, invite_id: int, user_id: int) -> CompetitionInvitation:
    invitation = db.query(CompetitionInvitation).filter(
        CompetitionInvitation.id == invite_id,
        CompetitionInvitation.invitee_id == user_id
    ).first()
    if not invitation:
        raise HTTPException(status_code=404, detail="Invitación no encontrada")
    if invitation.status != RequestStatus.pending.value:
        raise HTTPException(status_code=400, detail="Invitación ya procesada")
    return invitation


@app.post("/api/competition/invitations/{invite_id}/accept", tags=["Invitations"])
def accept_invitation(
    invite_id: int, data: UserAction,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    """Aceptar = marcar como aceptada + unirse (fila de 0 minutos)"""
    ensure_acting_user(data.user_id, token_user_id)
    invitation = _get_pending_invitation(db, invite_id, data.user_id)

    invitation.status = RequestStatus.accepted.value
    db.commit()

    competition = invitation.competition
    if not is_member(db, data.user_id, competition.id):
        join_competition(db, data.user_id, competition)

    return {"success": True, "competitionId": competition.id}


@app.post("/api/competition/invitations/{invite_id}/decline", tags=["Invitations"])
def decline_invitation(
    invite_id: int, data: UserAction,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db)
):
    ensure_acting_user(data.user_id, token_user_id)
    invitation = _get_pending_invitation(db, invite_id, data.user_id)

    invitation.status = RequestStatus.declined.value
    db.commit()
    return {"success": True}


# ─────────────────────────────────────────────────────────────────────────────
# Detalle de una competición. Va DESPUÉS de /api/competition/invitations
# para que "invitations" no se tome como un id.
# ─────────────────────────────────────────────────────────────────────────────

@app.get("/api/competition/{competition_id}", tags=["Competitions"])
def get_competition_detail(
    competition_id: int,
    user_id: int = Query(alias="userId"),
    db: Session = Depends(get_db)
):
    """
    Detalle completo: ranking, tu tiempo (con desglose) y total de la
    competición. Solo para participantes.
    """
    competition = get_competition(db, competition_id)
    if not is_member(db, user_id, competition.id):
        raise HTTPException(status_code=403, detail="No participas en esta competición.")

    totals = compute_user_total(db, user_id, competition.id)
    leaderboard = build_leaderboard(db, competition)

    return {
        "success": True,
        "competition": CompetitionResponse.model_validate(competition).model_dump(),
        "leaderboard": leaderboard,
        "userStats": {
            "totalMinutes": totals["total"],
            "manualMinutes": totals["manual_total"],
            "goalCompletionMinutes": totals["goal_total"],
            "rank": user_rank(leaderboard, user_id),
            "hasJoined": True,
            "manualLogs": totals["manual_logs"],
            "goalCompletions": totals["goal_completions"],
        },
        "totalTime": sum(e["total_minutes"] for e in leaderboard),
        "isCreator": competition.creator_id == user_id
    }


# =============================================================================
# ===================== SECCIÓN 6: FRIENDS ====================================
# =============================================================================

def are_friends(db: Session, viewer_id: int, profile_user_id: int) -> bool:
    """Uno mismo cuenta como amigo (puede ver su propio perfil)"""
    if viewer_id == profile_user_id:
        return True
    row = db.query(Friendship).filter(
        Friendship.user_id == viewer_id,
        Friendship.friend_id == profile_user_id
    ).first()
    return row is not None


@app.get("/api/friends", tags=["Friends"])
def list_friends(user_id: int = Query(alias="userId"), db: Session = Depends(get_db)):
    """Amigos del usuario, por orden alfabético"""
    friends = db.query(User).join(
        Friendship, Friendship.friend_id == User.id
    ).filter(
        Friendship.user_id == user_id
    ).order_by(func.lower(User.username)).all()
    return {"success": True, "friends": [UserResponse.model_validate(f).model_dump() for f in friends]}


@app.get("/api/users/{profile_user_id}/summary", tags=["Friends"])
def get_user_summary(
    profile_user_id: int,
    viewer_id: int = Query(alias="viewerId"),
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db)
):
    """
    Perfil compartido: solo lo ven los amigos.
    Con startDate y endDate, los minutos se limitan a ese periodo.
    """
    if not are_friends(db, viewer_id, profile_user_id):
        raise HTTPException(status_code=403, detail="No tienes permiso para ver este perfil")
    user = _get_user_or_404(db, profile_user_id)

    today = date.today()
    total_goals = db.query(Goal).filter(Goal.user_id == user.id).count()
    active_goals = db.query(Goal).filter(
        Goal.user_id == user.id, Goal.start_date <= today, Goal.end_date >= today
    ).count()

    minutes_query = db.query(
        Goal.title, func.coalesce(func.sum(GoalCompletion.duration_minutes), 0)
    ).join(
        GoalCompletion, GoalCompletion.goal_id == Goal.id
    ).filter(Goal.user_id == user.id)
    if start_date and end_date:
        minutes_query = minutes_query.filter(GoalCompletion.completion_date.between(start_date, end_date))

    activity = [
        {"activity": title, "minutes": int(minutes)}
        for title, minutes in minutes_query.group_by(Goal.title).all()
    ]
    activity.sort(key=lambda a: (-a["minutes"], a["activity"].lower()))

    last_7_days = db.query(func.coalesce(func.sum(GoalCompletion.duration_minutes), 0)).join(
        Goal, Goal.id == GoalCompletion.goal_id
    ).filter(
        Goal.user_id == user.id,
        GoalCompletion.completion_date >= today - timedelta(days=6)
    ).scalar()

    return {
        "success": True,
        "user": UserResponse.model_validate(user).model_dump(),
        "stats": {
            "totalGoals": total_goals,
            "activeGoals": active_goals,
            "totalMinutes": sum(a["minutes"] for a in activity),
            "last7DaysMinutes": int(last_7_days or 0)
        },
        "activity": activity
    }
