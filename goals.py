"""
=============================================================================
GOALS.PY — Lógica de Objetivos
=============================================================================
Gestiona:
  - El periodo de un objetivo (inicio y fin) según su tipo
  - Registrar tiempo en un objetivo para un día (upsert: una fila por día)

Periodos:
  daily / one-time → el mismo día
  weekly           → de lunes a domingo de la semana de la fecha
  monthly          → del día 1 al último día del mes
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from models import Goal, GoalCompletion, GoalType

logger = logging.getLogger("goaltracker.goals")


GOAL_TYPES = [t.value for t in GoalType]


def get_date_range(goal_type: str, start: date) -> tuple[date, date]:
    """
    Devuelve (inicio, fin) del periodo que contiene `start`.
    Lanza ValueError si el tipo no existe.
    """
    if goal_type in (GoalType.daily.value, GoalType.one_time.value):
        return start, start

    if goal_type == GoalType.weekly.value:
        monday = start - timedelta(days=start.weekday())
        return monday, monday + timedelta(days=6)

    if goal_type == GoalType.monthly.value:
        last_day = calendar.monthrange(start.year, start.month)[1]
        return start.replace(day=1), start.replace(day=last_day)

    raise ValueError(f"Tipo de objetivo no válido: '{goal_type}'. Usa uno de: {', '.join(GOAL_TYPES)}")


def upsert_completion(db: Session, goal: Goal, completion_date: date, duration_minutes: int) -> GoalCompletion:
    """
    Registra el tiempo de un objetivo para un día.

    Si ya existe un registro para ese objetivo+día, se SOBRESCRIBE
    (no se suma): la restricción única (goal_id, completion_date) manda.
    """
    completion = db.query(GoalCompletion).filter(
        GoalCompletion.goal_id == goal.id,
        GoalCompletion.completion_date == completion_date
    ).first()

    if completion:
        completion.duration_minutes = duration_minutes
        completion.completed_at = datetime.utcnow()
    else:
        completion = GoalCompletion(
            goal_id=goal.id,
            completion_date=completion_date,
            duration_minutes=duration_minutes,
            completed_at=datetime.utcnow()
        )
        db.add(completion)

    db.commit()
    db.refresh(completion)

    logger.info(f"✅ Objetivo '{goal.title}' ({goal.id}) → {duration_minutes} min el {completion_date}")
    return completion


def goals_in_period(db: Session, user_id: int, goal_type: Optional[str] = None, on_date: Optional[date] = None) -> list[Goal]:
    """
    Objetivos del usuario. Si se pasan tipo y fecha, solo los que se
    solapan con el periodo de ese tipo que contiene la fecha.
    """
    query = db.query(Goal).filter(Goal.user_id == user_id)

    if goal_type and on_date:
        period_start, period_end = get_date_range(goal_type, on_date)
        query = query.filter(Goal.start_date <= period_end, Goal.end_date >= period_start)

    return query.order_by(Goal.start_date, Goal.id).all()
