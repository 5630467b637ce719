"""
=============================================================================
SCHEMAS.PY — Esquemas de Validación (Pydantic)
=============================================================================
  - Models (SQLAlchemy) → definen las TABLAS de la BD
  - Schemas (Pydantic) → definen qué DATOS acepta/devuelve la API

El cliente web envía los campos en camelCase ({"userId": 1,
"durationMinutes": 30}). Los esquemas de entrada heredan de ApiInput, que
acepta camelCase y también snake_case. Las respuestas salen en snake_case,
igual que las columnas de la BD.

Convención de nombres:
  XxxCreate → para crear algo nuevo (POST)
  XxxUpdate → para actualizar algo
  XxxResponse → lo que devuelve la API
"""

from pydantic import BaseModel, Field, EmailStr
from pydantic.alias_generators import to_camel
from datetime import date, datetime
from typing import Optional


class ApiInput(BaseModel):
    """Base de los cuerpos de petición: userId o user_id, los dos valen"""
    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class UserAction(ApiInput):
    """Cuerpo mínimo: quién hace la acción (borrados, aceptar, rechazar...)"""
    user_id: int


# =============================================================================
# ===================== USERS =================================================
# =============================================================================

class UserRegister(ApiInput):
    email: EmailStr
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=6, description="Mínimo 6 caracteres")

class UserLogin(ApiInput):
    username: str = Field(min_length=1, description="Email o nombre de usuario")
    password: str

class UserResponse(BaseModel):
    id: int
    username: str
    model_config = {"from_attributes": True}


# =============================================================================
# ===================== GOALS =================================================
# =============================================================================

class GoalCreate(ApiInput):
    user_id: int
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    type: str = "daily"
    start_date: date

class GoalResponse(BaseModel):
    id: int
    user_id: int
    title: str
    description: Optional[str]
    duration_minutes: Optional[int]
    type: str
    start_date: date
    end_date: date
    created_at: datetime
    model_config = {"from_attributes": True}

class GoalCompletionCreate(ApiInput):
    user_id: int
    date: date
    duration_minutes: int = Field(default=0, ge=0)

class GoalCompletionResponse(BaseModel):
    id: int
    goal_id: int
    completion_date: date
    duration_minutes: int
    completed_at: Optional[datetime]
    model_config = {"from_attributes": True}


# =============================================================================
# ===================== COMPETITIONS ==========================================
# =============================================================================

class CompetitionCreate(ApiInput):
    user_id: int
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = ""

class CompetitionUpdate(ApiInput):
    user_id: int
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None

class CompetitionResponse(BaseModel):
    id: int
    creator_id: int
    title: str
    description: Optional[str]
    created_at: datetime
    model_config = {"from_attributes": True}

class CompetitionLogCreate(ApiInput):
    """durationMinutes = 0 → unirse (si aún no eres miembro)"""
    user_id: int
    competition_id: int
    duration_minutes: int
    logged_date: Optional[date] = None

class CompetitionRemove(ApiInput):
    user_id: int
    competition_id: int
    duration_minutes: int

class CompetitionMembership(ApiInput):
    user_id: int
    competition_id: int


# =============================================================================
# ===================== INVITATIONS ===========================================
# =============================================================================

class InvitationCreate(ApiInput):
    competition_id: int
    inviter_id: int
    invitee_username: str = Field(min_length=1)

class InvitationResponse(BaseModel):
    id: int
    competition_id: int
    inviter_id: int
    invitee_username: str
    status: str
    created_at: datetime
    competition_title: str
    competition_description: Optional[str]
    inviter_username: str
