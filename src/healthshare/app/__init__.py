"""Health share FastAPI application."""

from .main import AppDependencies, build_supabase_deps, create_app
from .settings import ShareSettings

__all__ = ["AppDependencies", "ShareSettings", "build_supabase_deps", "create_app"]
