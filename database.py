"""
=============================================================================
DATABASE.PY — Configuración de la Base de Datos
=============================================================================
Conexión única a la base de datos para toda la API.

En DESARROLLO: SQLite (archivo goaltracker.db en la carpeta actual)
En PRODUCCIÓN: PostgreSQL, si existe la variable de entorno DATABASE_URL.

Toda la lógica (competiciones, objetivos, amigos) habla con la BD a través
de SQLAlchemy, así que da igual qué motor haya debajo: no hay SQL distinto
para SQLite y para Postgres.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

# ─────────────────────────────────────────────────────────────────────────────
# CONEXIÓN
# ─────────────────────────────────────────────────────────────────────────────

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./goaltracker.db")

# Los proveedores dan la URL con "postgres://"; SQLAlchemy + psycopg (v3)
# necesita "postgresql+psycopg://"
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg://", 1)
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)

# ─────────────────────────────────────────────────────────────────────────────
# ENGINE
# ─────────────────────────────────────────────────────────────────────────────
# check_same_thread=False → solo para SQLite (FastAPI usa varios hilos)

engine_args = {}
if DATABASE_URL.startswith("sqlite"):
    engine_args["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, echo=False, **engine_args)


def enable_sqlite_foreign_keys(target_engine):
    """
    SQLite no aplica las FOREIGN KEY (ni ON DELETE CASCADE) si no se activa
    en cada conexión. Se usa aquí y en los tests con su propio engine.
    """
    if target_engine.dialect.name != "sqlite":
        return

    @event.listens_for(target_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


enable_sqlite_foreign_keys(engine)

# ─────────────────────────────────────────────────────────────────────────────
# SESSION
# ─────────────────────────────────────────────────────────────────────────────

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# ─────────────────────────────────────────────────────────────────────────────
# BASE (Clase base para los modelos)
# ─────────────────────────────────────────────────────────────────────────────

Base = declarative_base()


def get_db():
    """
    Dependencia de FastAPI: abre una sesión por petición y la cierra al final.

      @app.get("/algo")
      def mi_endpoint(db: Session = Depends(get_db)):
          ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Crea todas las tablas que no existan. Se llama al arrancar la API."""
    Base.metadata.create_all(bind=engine)
