"""FastAPI web server for the roadmap board."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ..board.engine import BoardEngine
from .board_api import create_board_router


def create_app(
    project_dir: Optional[Path] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        project_dir: Default project directory.
        enable_cors: Whether to enable CORS.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Roadmap Board",
        description="Hierarchical roadmap board with drag-and-drop ordering",
        version="0.1.0",
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.default_project_dir = project_dir
    engines: dict[Path, BoardEngine] = {}

    def _get_project_dir(project_dir_param: Optional[str] = None) -> Path:
        """Get project directory from parameter or default."""
        if project_dir_param:
            return Path(project_dir_param)
        if app.state.default_project_dir:
            return app.state.default_project_dir
        return Path.cwd()

    def _get_engine(project_dir_param: Optional[str] = None) -> BoardEngine:
        resolved = _get_project_dir(project_dir_param).resolve()
        engine = engines.get(resolved)
        if engine is None:
            logger.debug("Opening board for {}", resolved)
            engine = engines[resolved] = BoardEngine.for_project(resolved)
        return engine

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Roadmap Board",
            "version": "0.1.0",
            "status": "running",
        }

    app.include_router(create_board_router(_get_engine))
    return app
