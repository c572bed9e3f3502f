"""FastAPI dependencies for settings and database."""

from fastapi import Request

from config import Settings
from db import Database


def get_settings(request: Request) -> Settings:
    """Settings instance the app was created with."""
    return request.app.state.settings


def get_database(request: Request) -> Database:
    """Database the app was created with."""
    return request.app.state.database
