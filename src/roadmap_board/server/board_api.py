"""Board API endpoints: hierarchy, filtered view, drag moves and collapse state.

This module provides a FastAPI router mounted under ``/api/board`` by the
main ``create_app`` factory.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field

from ..board.engine import BoardEngine
from ..board.filtering import FilterState
from ..board.ordering import DragEnded, DragPhase, DragSession, DragStarted, reduce_drag
from ..logging_utils import summarize_move


# ---------------------------------------------------------------------------
# Pydantic request / response models
# ---------------------------------------------------------------------------

class MoveRequest(BaseModel):
    target: Optional[str] = None


class ReorderRequest(BaseModel):
    ids: list[int]


class BlockPositionRequest(BaseModel):
    index: int = Field(ge=0)


class CollapseKeyRequest(BaseModel):
    key: str


class CollapseKeysRequest(BaseModel):
    keys: list[str] = Field(default_factory=list)


class CreateBlockRequest(BaseModel):
    title: str
    title_ru: Optional[str] = None
    number: Optional[int] = None
    deadline: Optional[str] = None
    reminder_days: int = Field(default=3, ge=0)


class CreateSectionRequest(BaseModel):
    title: str


class CreateTaskRequest(BaseModel):
    title: str
    status: str = "not_started"
    priority: str = "none"
    deadline: Optional[str] = None


class UpdateTaskRequest(BaseModel):
    title: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    deadline: Optional[str] = None


class CreateSubtaskRequest(BaseModel):
    title: str
    status: str = "not_started"


class CreateTagRequest(BaseModel):
    name: str
    color: Optional[str] = None
    tag_type: Optional[str] = "label"


class BoardResponse(BaseModel):
    board: dict[str, Any]


class MoveResponse(BaseModel):
    status: str
    move: Optional[dict[str, Any]] = None
    board: Optional[dict[str, Any]] = None


class CollapsedResponse(BaseModel):
    collapsed: list[str]


class ToggleResponse(BaseModel):
    key: str
    is_collapsed: bool
    collapsed: list[str]


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------

def _finish_drag(engine: BoardEngine, session: DragSession) -> MoveResponse:
    if session.phase != DragPhase.COMMITTED:
        return MoveResponse(status=session.phase.value)
    try:
        board = engine.finish_drag(session)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Drag committed: {}", summarize_move(session.result))
    return MoveResponse(
        status=session.phase.value,
        move=summarize_move(session.result),
        board=board.to_dict() if board else None,
    )


def create_board_router(get_engine: Any) -> APIRouter:
    """Create the board API router.

    Parameters
    ----------
    get_engine:
        A callable ``(project_dir_param: str | None) -> BoardEngine`` that
        resolves the engine for the current request's project directory.
    """
    router = APIRouter(prefix="/api/board", tags=["board"])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @router.get("", response_model=BoardResponse)
    async def get_board(project_dir: Optional[str] = Query(None)) -> BoardResponse:
        engine = get_engine(project_dir)
        return BoardResponse(board=engine.refresh().to_dict())

    @router.get("/view")
    async def get_view(
        project_dir: Optional[str] = Query(None),
        filter: Optional[str] = Query(None),
        tags: Optional[list[int]] = Query(None),
        tag_mode: Optional[str] = Query(None),
        group_by: Optional[str] = Query(None),
        deadline: Optional[str] = Query(None),
        sort: Optional[str] = Query(None),
        direction: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = get_engine(project_dir)
        try:
            state = FilterState.from_params(
                active_filter=filter,
                selected_tags=tags,
                tag_filter_mode=tag_mode,
                group_by=group_by,
                deadline_filter=deadline,
                sort_field=sort,
                sort_direction=direction,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return engine.build_view(state).to_dict()

    @router.get("/events")
    async def get_events(
        project_dir: Optional[str] = Query(None),
        limit: int = Query(100, ge=1, le=1000),
    ) -> dict[str, Any]:
        engine = get_engine(project_dir)
        return {"events": engine.get_recent_events(limit)}

    # ------------------------------------------------------------------
    # Drag and drop
    # ------------------------------------------------------------------

    @router.post("/tasks/{task_id}/move", response_model=MoveResponse)
    async def move_task(
        task_id: int,
        body: MoveRequest,
        project_dir: Optional[str] = Query(None),
    ) -> MoveResponse:
        engine = get_engine(project_dir)
        board = engine.refresh()
        task = board.find_task(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        session = reduce_drag(DragSession(), DragStarted(task))
        session = reduce_drag(session, DragEnded(engine.resolve_target(board, body.target)))
        return _finish_drag(engine, session)

    @router.post("/sections/{section_id}/move", response_model=MoveResponse)
    async def move_section(
        section_id: int,
        body: MoveRequest,
        project_dir: Optional[str] = Query(None),
    ) -> MoveResponse:
        engine = get_engine(project_dir)
        board = engine.refresh()
        section = board.find_section(section_id)
        if section is None:
            raise HTTPException(status_code=404, detail=f"Section {section_id} not found")
        session = reduce_drag(DragSession(), DragStarted(section))
        session = reduce_drag(session, DragEnded(engine.resolve_target(board, body.target)))
        return _finish_drag(engine, session)

    # ------------------------------------------------------------------
    # Bulk reorders
    # ------------------------------------------------------------------

    @router.post("/sections/{section_id}/reorder", response_model=BoardResponse)
    async def reorder_tasks(
        section_id: int,
        body: ReorderRequest,
        project_dir: Optional[str] = Query(None),
    ) -> BoardResponse:
        engine = get_engine(project_dir)
        if engine.refresh().find_section(section_id) is None:
            raise HTTPException(status_code=404, detail=f"Section {section_id} not found")
        board = engine.reorder_tasks(section_id, body.ids)
        return BoardResponse(board=board.to_dict())

    @router.post("/blocks/reorder", response_model=BoardResponse)
    async def reorder_blocks(
        body: ReorderRequest,
        project_dir: Optional[str] = Query(None),
    ) -> BoardResponse:
        engine = get_engine(project_dir)
        try:
            board = engine.reorder_blocks(body.ids)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return BoardResponse(board=board.to_dict())

    @router.post("/blocks/{block_id}/reorder", response_model=BoardResponse)
    async def reorder_sections(
        block_id: int,
        body: ReorderRequest,
        project_dir: Optional[str] = Query(None),
    ) -> BoardResponse:
        engine = get_engine(project_dir)
        if engine.refresh().find_block(block_id) is None:
            raise HTTPException(status_code=404, detail=f"Block {block_id} not found")
        board = engine.reorder_sections(block_id, body.ids)
        return BoardResponse(board=board.to_dict())

    @router.post("/blocks/{block_id}/position", response_model=BoardResponse)
    async def move_block(
        block_id: int,
        body: BlockPositionRequest,
        project_dir: Optional[str] = Query(None),
    ) -> BoardResponse:
        engine = get_engine(project_dir)
        try:
            board = engine.move_block(block_id, body.index)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except IndexError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return BoardResponse(board=board.to_dict())

    @router.post("/tasks/{task_id}/subtasks/reorder", response_model=BoardResponse)
    async def reorder_subtasks(
        task_id: int,
        body: ReorderRequest,
        project_dir: Optional[str] = Query(None),
    ) -> BoardResponse:
        engine = get_engine(project_dir)
        if engine.refresh().find_task(task_id) is None:
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        board = engine.reorder_subtasks(task_id, body.ids)
        return BoardResponse(board=board.to_dict())

    # ------------------------------------------------------------------
    # Collapse state
    # ------------------------------------------------------------------

    @router.get("/collapsed", response_model=CollapsedResponse)
    async def get_collapsed(project_dir: Optional[str] = Query(None)) -> CollapsedResponse:
        engine = get_engine(project_dir)
        return CollapsedResponse(collapsed=sorted(engine.collapse.reload()))

    @router.post("/collapsed", response_model=CollapsedResponse)
    async def set_collapsed(
        body: CollapseKeysRequest,
        project_dir: Optional[str] = Query(None),
    ) -> CollapsedResponse:
        engine = get_engine(project_dir)
        engine.collapse.collapse_all(body.keys)
        return CollapsedResponse(collapsed=sorted(engine.collapse.collapsed))

    @router.post("/collapsed/toggle", response_model=ToggleResponse)
    async def toggle_collapsed(
        body: CollapseKeyRequest,
        project_dir: Optional[str] = Query(None),
    ) -> ToggleResponse:
        engine = get_engine(project_dir)
        now_collapsed = engine.collapse.toggle(body.key)
        return ToggleResponse(
            key=body.key,
            is_collapsed=now_collapsed,
            collapsed=sorted(engine.collapse.collapsed),
        )

    @router.post("/collapsed/expand-all", response_model=CollapsedResponse)
    async def expand_all(project_dir: Optional[str] = Query(None)) -> CollapsedResponse:
        engine = get_engine(project_dir)
        engine.collapse.expand_all()
        return CollapsedResponse(collapsed=[])

    @router.post("/collapsed/collapse-all", response_model=CollapsedResponse)
    async def collapse_all(
        body: CollapseKeysRequest,
        project_dir: Optional[str] = Query(None),
    ) -> CollapsedResponse:
        engine = get_engine(project_dir)
        engine.collapse.collapse_all(body.keys)
        return CollapsedResponse(collapsed=sorted(engine.collapse.collapsed))

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    @router.post("/blocks", status_code=201)
    async def create_block(
        body: CreateBlockRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = get_engine(project_dir)
        block = engine.create_block(**body.model_dump())
        return {"block": block.to_dict()}

    @router.post("/blocks/{block_id}/sections", status_code=201)
    async def create_section(
        block_id: int,
        body: CreateSectionRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = get_engine(project_dir)
        try:
            section = engine.create_section(block_id, body.title)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"section": section.to_dict()}

    @router.post("/sections/{section_id}/tasks", status_code=201)
    async def create_task(
        section_id: int,
        body: CreateTaskRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = get_engine(project_dir)
        if engine.refresh().find_section(section_id) is None:
            raise HTTPException(status_code=404, detail=f"Section {section_id} not found")
        try:
            task = engine.create_task(section_id, **body.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"task": task.to_dict()}

    @router.patch("/tasks/{task_id}")
    async def update_task(
        task_id: int,
        body: UpdateTaskRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = get_engine(project_dir)
        if engine.refresh().find_task(task_id) is None:
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        changes = body.model_dump(exclude_unset=True)
        try:
            task = engine.update_task(task_id, changes)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"task": task.to_dict()}

    @router.delete("/tasks/{task_id}")
    async def delete_task(task_id: int, project_dir: Optional[str] = Query(None)) -> dict[str, str]:
        engine = get_engine(project_dir)
        if not engine.delete_task(task_id):
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        return {"status": "deleted"}

    @router.post("/tasks/{task_id}/subtasks", status_code=201)
    async def create_subtask(
        task_id: int,
        body: CreateSubtaskRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = get_engine(project_dir)
        if engine.refresh().find_task(task_id) is None:
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        try:
            subtask = engine.create_subtask(task_id, body.title, status=body.status)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"subtask": subtask.to_dict()}

    @router.post("/tags", status_code=201)
    async def create_tag(
        body: CreateTagRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = get_engine(project_dir)
        try:
            tag = engine.create_tag(body.name, color=body.color, tag_type=body.tag_type)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"tag": tag.to_dict()}

    @router.post("/tasks/{task_id}/tags/{tag_id}")
    async def tag_task(
        task_id: int,
        tag_id: int,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, str]:
        engine = get_engine(project_dir)
        try:
            engine.tag_task(task_id, tag_id)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"status": "ok"}

    return router
