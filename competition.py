"""
=============================================================================
COMPETITION.PY — Cálculo del Tiempo en Competiciones
=============================================================================
Gestiona:
  - Quién es MIEMBRO de una competición
  - El tiempo total de un usuario en una competición
  - El ranking (leaderboard)
  - Añadir / quitar tiempo (libro de registro "solo añadir")
  - La sincronización al borrar entre objetivos y competiciones

¿De dónde sale el tiempo de un usuario?
  1. Registros manuales (competition_logs): +30, 0 (unirse), -15 (quitar)
  2. Objetivos del usuario cuyo TÍTULO coincide con el de la competición
     (sin distinguir mayúsculas y sin espacios alrededor). Solo cuentan
     los registros con minutos > 0.

  total = max(0, manual + objetivos)

El total NUNCA se guarda en la BD. Se recalcula en cada lectura, y TODAS
las vistas (tarjeta de la lista, detalle, ranking, modal del participante,
validación de "quitar tiempo") usan compute_user_total(). Si una vista
calculase el número por su cuenta, el usuario vería dos cifras distintas.
"""

import logging
import threading
import weakref
from collections import defaultdict
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Competition, CompetitionLog, Goal, GoalCompletion, User

logger = logging.getLogger("goaltracker.competition")


class CompetitionError(Exception):
    """Error de negocio con su código HTTP (400, 403, 404)"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# =============================================================================
# ===================== TÍTULOS Y MIEMBROS ====================================
# =============================================================================

def title_key(value):
    """lower(trim(x)) en SQL: " Run " y "run" son la misma llave"""
    return func.lower(func.trim(value))


def get_competition(db: Session, competition_id: int) -> Competition:
    """Devuelve la competición o lanza 404"""
    competition = db.query(Competition).filter(Competition.id == competition_id).first()
    if not competition:
        raise CompetitionError("Competición no encontrada", 404)
    return competition


def _is_member(db: Session, user_id: int, competition: Competition) -> bool:
    if competition.creator_id == user_id:
        return True

    # Cualquier fila vale, también la de 0 minutos (la de "unirse")
    joined = db.query(CompetitionLog.id).filter(
        CompetitionLog.competition_id == competition.id,
        CompetitionLog.user_id == user_id
    ).first()
    return joined is not None


def is_member(db: Session, user_id: int, competition_id: int) -> bool:
    """
    ¿Cuenta este usuario en la competición?
      - Es el creador, o
      - tiene al menos una fila en competition_logs (aunque sea de 0 min)
    """
    competition = db.query(Competition).filter(Competition.id == competition_id).first()
    if not competition:
        return False
    return _is_member(db, user_id, competition)


# =============================================================================
# ===================== TIEMPO DE UN USUARIO ==================================
# =============================================================================

def empty_total() -> dict:
    return {
        "manual_total": 0,
        "goal_total": 0,
        "total": 0,
        "manual_logs": [],
        "goal_completions": [],
    }


def _matching_completions(db: Session, user_id: int, competition_title: str):
    """Registros > 0 min de los objetivos del usuario con el mismo título"""
    return db.query(GoalCompletion, Goal).join(
        Goal, Goal.id == GoalCompletion.goal_id
    ).filter(
        Goal.user_id == user_id,
        title_key(Goal.title) == title_key(competition_title),
        GoalCompletion.duration_minutes > 0
    ).order_by(GoalCompletion.completion_date.desc(), GoalCompletion.id.desc()).all()


def compute_user_total(db: Session, user_id: int, competition_id: int) -> dict:
    """
    Tiempo de un usuario en una competición. LA función de referencia.

    Retorna:
      {
        "manual_total": 10,        # suma de TODOS los registros manuales (+ y -)
        "goal_total": 30,          # suma de objetivos con el mismo título (> 0)
        "total": 40,               # max(0, manual + objetivos)
        "manual_logs": [...],      # registros manuales > 0 (para mostrar/borrar)
        "goal_completions": [...]  # registros de objetivos que cuentan
      }

    Si la competición no existe o el usuario no es miembro → todo a 0,
    aunque tenga objetivos con el mismo título (no cuentan hasta unirse).
    """
    competition = db.query(Competition).filter(Competition.id == competition_id).first()
    if not competition or not _is_member(db, user_id, competition):
        return empty_total()

    # ── 1. Registros manuales ──
    logs = db.query(CompetitionLog).filter(
        CompetitionLog.competition_id == competition.id,
        CompetitionLog.user_id == user_id
    ).order_by(CompetitionLog.logged_at.desc(), CompetitionLog.id.desc()).all()

    manual_total = sum(log.duration_minutes or 0 for log in logs)
    # Puede ser negativo si se quitó más de lo registrado a mano

    # ── 2. Objetivos con el mismo título ──
    completions = _matching_completions(db, user_id, competition.title)
    goal_total = sum(completion.duration_minutes for completion, _ in completions)

    # ── 3. Total (nunca negativo) ──
    total = max(0, manual_total + goal_total)

    logger.debug(
        f"Competición {competition.id} / usuario {user_id}: "
        f"manual={manual_total} objetivos={goal_total} total={total}"
    )

    return {
        "manual_total": manual_total,
        "goal_total": goal_total,
        "total": total,
        # Los negativos y los 0 son internos: no se enseñan como registros
        "manual_logs": [
            {
                "id": log.id,
                "duration_minutes": log.duration_minutes,
                "logged_date": log.logged_date,
                "logged_at": log.logged_at,
                "type": "manual",
            }
            for log in logs if (log.duration_minutes or 0) > 0
        ],
        "goal_completions": [
            {
                "id": goal.id,
                "completion_date": completion.completion_date,
                "duration_minutes": completion.duration_minutes,
                "goal_title": goal.title,
                "type": "goal",
            }
            for completion, goal in completions
        ],
    }


# =============================================================================
# ===================== RANKING ===============================================
# =============================================================================

def participant_candidates(db: Session, competition: Competition) -> set[int]:
    """
    Posibles participantes:
      - el creador
      - cualquiera con registros en la competición
      - cualquiera con objetivos del mismo título y minutos > 0
    """
    user_ids = {competition.creator_id}

    log_users = db.query(CompetitionLog.user_id).filter(
        CompetitionLog.competition_id == competition.id
    ).distinct().all()
    user_ids.update(uid for (uid,) in log_users)

    goal_users = db.query(Goal.user_id).join(
        GoalCompletion, GoalCompletion.goal_id == Goal.id
    ).filter(
        title_key(Goal.title) == title_key(competition.title),
        GoalCompletion.duration_minutes > 0
    ).distinct().all()
    user_ids.update(uid for (uid,) in goal_users)

    return user_ids


def build_leaderboard(db: Session, competition: Competition) -> list[dict]:
    """
    Ranking de la competición, de más a menos minutos.

    Solo aparecen los miembros: quien tiene objetivos con el mismo título
    pero no se ha unido suma 0 y no sale en la tabla.
    Empates: por nombre de usuario (sin mayúsculas) y después por id.
    """
    candidates = participant_candidates(db, competition)
    usernames = {
        u.id: u.username
        for u in db.query(User).filter(User.id.in_(candidates)).all()
    }

    leaderboard = []
    for uid in candidates:
        if not _is_member(db, uid, competition):
            continue
        leaderboard.append({
            "id": uid,
            "username": usernames.get(uid, "Unknown"),
            "total_minutes": compute_user_total(db, uid, competition.id)["total"],
        })

    leaderboard.sort(key=lambda e: (-e["total_minutes"], e["username"].lower(), e["id"]))
    return leaderboard


def user_rank(leaderboard: list[dict], user_id: int) -> str:
    """
    Posición del usuario: 1 + cuántos tienen ESTRICTAMENTE más minutos.
    "-" si no está en el ranking o tiene 0 minutos.
    """
    entry = next((e for e in leaderboard if e["id"] == user_id), None)
    if entry is None or entry["total_minutes"] <= 0:
        return "-"

    above = sum(1 for e in leaderboard if e["total_minutes"] > entry["total_minutes"])
    return str(above + 1)


# =============================================================================
# ===================== AÑADIR / QUITAR TIEMPO ================================
# =============================================================================

# Un candado por (usuario, competición): comprobar saldo + insertar el
# negativo tiene que ir junto, o dos peticiones a la vez quitarían de más.
# WeakValueDictionary → el candado desaparece cuando nadie lo está usando
_ledger_locks: "weakref.WeakValueDictionary[tuple[int, int], threading.Lock]" = weakref.WeakValueDictionary()
_ledger_locks_guard = threading.Lock()


def _ledger_lock(user_id: int, competition_id: int) -> threading.Lock:
    with _ledger_locks_guard:
        lock = _ledger_locks.get((user_id, competition_id))
        if lock is None:
            lock = threading.Lock()
            _ledger_locks[(user_id, competition_id)] = lock
        return lock


def _append_log(db: Session, competition_id: int, user_id: int, minutes: int,
                logged_date: Optional[date] = None) -> CompetitionLog:
    log = CompetitionLog(
        competition_id=competition_id,
        user_id=user_id,
        duration_minutes=minutes,
        logged_date=logged_date or date.today()
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def join_competition(db: Session, user_id: int, competition: Competition) -> CompetitionLog:
    """Unirse = una fila de 0 minutos"""
    log = _append_log(db, competition.id, user_id, 0)
    logger.info(f"🙋 Usuario {user_id} se une a la competición '{competition.title}' ({competition.id})")
    return log


def log_time(db: Session, user_id: int, competition_id: int, duration_minutes: int,
             logged_date: Optional[date] = None) -> tuple[CompetitionLog, bool]:
    """
    Endpoint único para unirse y para registrar tiempo.

      - No miembro + 0 min  → se une (fila de 0). Retorna (log, True)
      - No miembro + > 0    → 403, primero hay que unirse
      - Miembro             → se añade la fila tal cual. Retorna (log, False)
    """
    if duration_minutes is None or duration_minutes < 0:
        raise CompetitionError("Duración no válida", 400)

    competition = get_competition(db, competition_id)

    if not _is_member(db, user_id, competition):
        if duration_minutes == 0:
            return join_competition(db, user_id, competition), True
        raise CompetitionError("Tienes que unirte a esta competición primero.", 403)

    log = _append_log(db, competition.id, user_id, duration_minutes, logged_date)
    logger.info(f"⏱️ +{duration_minutes} min en '{competition.title}' (usuario {user_id})")
    return log, False


def remove_time(db: Session, user_id: int, competition_id: int, amount: int) -> CompetitionLog:
    """
    Quita minutos añadiendo una fila NEGATIVA (nunca se borra ni se edita
    nada). No se puede quitar más que el total actual.
    """
    if amount is None or amount <= 0:
        raise CompetitionError("La cantidad a quitar debe ser mayor que 0", 400)

    competition = get_competition(db, competition_id)
    if not _is_member(db, user_id, competition):
        raise CompetitionError("Tienes que unirte a esta competición primero.", 403)

    with _ledger_lock(user_id, competition.id):
        current_total = compute_user_total(db, user_id, competition.id)["total"]
        if amount > current_total:
            raise CompetitionError(
                f"No puedes quitar {amount} minutos. Solo tienes {current_total} minutos.", 400
            )
        log = _append_log(db, competition.id, user_id, -amount)

    logger.info(f"➖ -{amount} min en '{competition.title}' (usuario {user_id}, quedan {current_total - amount})")
    return log


# =============================================================================
# ===================== BORRADOS SINCRONIZADOS ================================
# =============================================================================
# No hay foreign key entre un registro de objetivo y uno de competición.
# Al borrar uno, se busca "su pareja" por usuario + fecha + minutos + título
# y se borra COMO MUCHO una fila (la más reciente). Si los datos se editaron
# por separado, puede no encontrarse o borrarse otra con los mismos valores.

def delete_manual_log(db: Session, log_id: int, user_id: int) -> dict:
    """Borra un registro manual y, si la hay, una completion igual del objetivo"""
    log = db.query(CompetitionLog).filter(CompetitionLog.id == log_id).first()
    if not log:
        raise CompetitionError("Registro no encontrado", 404)
    if log.user_id != user_id:
        raise CompetitionError("No puedes borrar este registro", 403)

    competition_title = log.competition.title
    logged_date, duration = log.logged_date, log.duration_minutes
    db.delete(log)

    # Filas de 0 (unirse) o negativas (quitar) no tienen pareja
    completion = None
    if (duration or 0) > 0:
        completion = db.query(GoalCompletion).join(
            Goal, Goal.id == GoalCompletion.goal_id
        ).filter(
            Goal.user_id == user_id,
            title_key(Goal.title) == title_key(competition_title),
            GoalCompletion.completion_date == logged_date,
            GoalCompletion.duration_minutes == duration
        ).order_by(GoalCompletion.completed_at.desc(), GoalCompletion.id.desc()).first()

    synced_id = None
    if completion:
        synced_id = completion.id
        db.delete(completion)
        logger.info(f"🔁 Sincronizado: borrada completion {synced_id} del objetivo '{competition_title}'")

    db.commit()
    return {"deleted_log_id": log_id, "synced_completion_id": synced_id}


def delete_goal_completion(db: Session, goal_id: int, completion_date: date, user_id: int) -> dict:
    """Borra el registro de un objetivo en un día y, si lo hay, un log igual de la competición"""
    goal = db.query(Goal).filter(Goal.id == goal_id, Goal.user_id == user_id).first()
    if not goal:
        raise CompetitionError("Objetivo no encontrado", 404)

    completion = db.query(GoalCompletion).filter(
        GoalCompletion.goal_id == goal.id,
        GoalCompletion.completion_date == completion_date
    ).first()
    if not completion:
        raise CompetitionError("Registro no encontrado", 404)

    completion_id, duration = completion.id, completion.duration_minutes
    db.delete(completion)

    # Una completion de 0 min no cuenta en ninguna competición: no tiene pareja
    log = None
    if duration > 0:
        log = db.query(CompetitionLog).join(
            Competition, Competition.id == CompetitionLog.competition_id
        ).filter(
            CompetitionLog.user_id == user_id,
            title_key(Competition.title) == title_key(goal.title),
            CompetitionLog.logged_date == completion_date,
            CompetitionLog.duration_minutes == duration
        ).order_by(CompetitionLog.logged_at.desc(), CompetitionLog.id.desc()).first()

    synced_id = None
    if log:
        synced_id = log.id
        db.delete(log)
        logger.info(f"🔁 Sincronizado: borrado log {synced_id} de la competición '{goal.title}'")

    db.commit()
    return {"deleted_completion_id": completion_id, "synced_log_id": synced_id}


# =============================================================================
# ===================== DESGLOSE POR DÍAS =====================================
# =============================================================================

def daily_breakdown(totals: dict) -> list[dict]:
    """
    Minutos por día a partir del resultado de compute_user_total()
    (registros manuales > 0 + objetivos), del día más reciente al más antiguo.
    """
    per_day = defaultdict(int)
    for log in totals["manual_logs"]:
        per_day[log["logged_date"]] += log["duration_minutes"]
    for completion in totals["goal_completions"]:
        per_day[completion["completion_date"]] += completion["duration_minutes"]

    return [
        {"logged_date": day, "total_minutes": minutes}
        for day, minutes in sorted(per_day.items(), reverse=True)
    ]
