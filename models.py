"""
=============================================================================
MODELS.PY — Todos los Modelos (Tablas) de la Base de Datos
=============================================================================
Cada clase aquí = una tabla en la base de datos.

RELACIONES:
  USER
  ├── goals[] ──→ goal_completions[]
  ├── competitions[] (las que ha creado) ──→ competition_logs[]
  │                                     └──→ competition_invitations[]
  ├── competition_logs[] (su tiempo en cualquier competición)
  └── friendships[] (dos filas por cada pareja de amigos)

OJO: entre Goal y Competition NO hay ninguna foreign key. Se relacionan
por el TÍTULO (sin mayúsculas ni espacios alrededor). Ver competition.py.
"""

from datetime import datetime, date
from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from database import Base
import enum


# =============================================================================
# ===================== ENUMS (Tipos predefinidos) ============================
# =============================================================================

class GoalType(str, enum.Enum):
    """Periodo que cubre un objetivo"""
    daily = "daily"          # Un día
    weekly = "weekly"        # Lunes → domingo
    monthly = "monthly"      # Día 1 → último día del mes
    one_time = "one-time"    # Un día, sin repetición


class RequestStatus(str, enum.Enum):
    """Estado de una invitación a competición"""
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


# =============================================================================
# ===================== TABLA 1: USERS ========================================
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    username = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    goals = relationship("Goal", back_populates="user", cascade="all, delete-orphan")
    competitions = relationship("Competition", back_populates="creator", cascade="all, delete-orphan")
    competition_logs = relationship("CompetitionLog", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 2: GOALS ========================================
# =============================================================================
# start_date / end_date se calculan a partir del tipo (ver goals.get_date_range).
# Siempre: end_date >= start_date

class Goal(Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(255), nullable=False)
    # title → también es la "llave" para sumar tiempo en competiciones
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    # duration_minutes → objetivo de minutos (opcional)

    type = Column(String(20), nullable=False, default=GoalType.daily.value)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="goals")
    completions = relationship("GoalCompletion", back_populates="goal", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 3: GOAL_COMPLETIONS =============================
# =============================================================================
# Un registro por objetivo y día. Si se vuelve a registrar el mismo día,
# se actualiza la fila existente (upsert).

class GoalCompletion(Base):
    __tablename__ = "goal_completions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False)

    completion_date = Column(Date, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=0)
    # 0 minutos → "hecho" pero sin tiempo. No cuenta en competiciones.

    completed_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('goal_id', 'completion_date', name='uq_goal_completion_date'),
    )

    goal = relationship("Goal", back_populates="completions")


# =============================================================================
# ===================== TABLA 4: COMPETITIONS =================================
# =============================================================================

class Competition(Base):
    __tablename__ = "competitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True, default="")

    created_at = Column(DateTime, default=datetime.utcnow)

    creator = relationship("User", back_populates="competitions")
    logs = relationship("CompetitionLog", back_populates="competition", cascade="all, delete-orphan")
    invitations = relationship("CompetitionInvitation", back_populates="competition", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 5: COMPETITION_LOGS =============================
# =============================================================================
# Libro de registro "solo añadir":
#   +30 → tiempo registrado a mano
#     0 → el usuario se ha unido (marca de miembro)
#   -15 → tiempo quitado
# El total nunca se guarda: se suma cada vez que se lee.

class CompetitionLog(Base):
    __tablename__ = "competition_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    competition_id = Column(Integer, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    duration_minutes = Column(Integer, nullable=False)
    logged_date = Column(Date, nullable=False, default=date.today)
    logged_at = Column(DateTime, default=datetime.utcnow)

    competition = relationship("Competition", back_populates="logs")
    user = relationship("User", back_populates="competition_logs")


# =============================================================================
# ===================== TABLA 6: COMPETITION_INVITATIONS ======================
# =============================================================================

class CompetitionInvitation(Base):
    __tablename__ = "competition_invitations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    competition_id = Column(Integer, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False)
    inviter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    invitee_username = Column(String(255), nullable=False)
    invitee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)

    status = Column(String(20), default=RequestStatus.pending.value)
    created_at = Column(DateTime, default=datetime.utcnow)

    competition = relationship("Competition", back_populates="invitations")
    inviter = relationship("User", foreign_keys=[inviter_id])


# =============================================================================
# ===================== TABLA 7: FRIENDS ======================================
# =============================================================================
# Una amistad aceptada = DOS filas (a→b y b→a), así "mis amigos" es
# una consulta simple por user_id.

class Friendship(Base):
    __tablename__ = "friendships"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    friend_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    friend = relationship("User", foreign_keys=[friend_id])
