from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from .board.engine import BoardEngine
from .board.filtering import FilterState
from .logging_utils import configure_logging, summarize_move


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _engine(args: argparse.Namespace) -> BoardEngine:
    return BoardEngine.for_project(_resolve_project_dir(args.project_dir))


def _emit(payload: Any) -> int:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + '\n')
    return 0


def _fail(message: str) -> int:
    sys.stderr.write(message + '\n')
    return 1


def _show(args: argparse.Namespace) -> int:
    return _emit({'board': _engine(args).refresh().to_dict()})


def _view(args: argparse.Namespace) -> int:
    try:
        state = FilterState.from_params(
            active_filter=args.filter,
            selected_tags=args.tag,
            tag_filter_mode=args.tag_mode,
            group_by=args.group_by,
            deadline_filter=args.deadline,
            sort_field=args.sort,
            sort_direction=args.direction,
        )
    except ValueError as exc:
        return _fail(str(exc))
    return _emit(_engine(args).build_view(state).to_dict())


def _move(args: argparse.Namespace, kind: str) -> int:
    engine = _engine(args)
    try:
        if kind == 'task':
            plan = engine.plan_task_move(args.item_id, args.target)
        else:
            plan = engine.plan_section_move(args.item_id, args.target)
        if plan is None:
            return _emit({'status': 'cancelled'})
        engine.commit(plan)
    except ValueError as exc:
        return _fail(str(exc))
    return _emit({'status': 'committed', 'move': summarize_move(plan)})


def _move_task(args: argparse.Namespace) -> int:
    return _move(args, 'task')


def _move_section(args: argparse.Namespace) -> int:
    return _move(args, 'section')


def _move_block(args: argparse.Namespace) -> int:
    try:
        board = _engine(args).move_block(args.block_id, args.index)
    except (ValueError, IndexError) as exc:
        return _fail(str(exc))
    return _emit({'blocks': [b.id for b in board.blocks]})


def _reorder_subtasks(args: argparse.Namespace) -> int:
    engine = _engine(args)
    if engine.refresh().find_task(args.task_id) is None:
        return _fail(f'Task {args.task_id} not found')
    task = engine.reorder_subtasks(args.task_id, args.ids).find_task(args.task_id)
    return _emit({'subtasks': [s.to_dict() for s in task.subtasks]})


def _add_block(args: argparse.Namespace) -> int:
    block = _engine(args).create_block(args.title, deadline=args.deadline)
    return _emit({'block': block.to_dict()})


def _add_section(args: argparse.Namespace) -> int:
    try:
        section = _engine(args).create_section(args.block_id, args.title)
    except ValueError as exc:
        return _fail(str(exc))
    return _emit({'section': section.to_dict()})


def _add_task(args: argparse.Namespace) -> int:
    try:
        task = _engine(args).create_task(args.section_id, args.title, status=args.status)
    except ValueError as exc:
        return _fail(str(exc))
    return _emit({'task': task.to_dict()})


def _collapse_toggle(args: argparse.Namespace) -> int:
    store = _engine(args).collapse
    now_collapsed = store.toggle(args.key)
    return _emit({'key': args.key, 'is_collapsed': now_collapsed, 'collapsed': sorted(store.collapsed)})


def _collapse_expand_all(args: argparse.Namespace) -> int:
    store = _engine(args).collapse
    store.expand_all()
    return _emit({'collapsed': []})


def _collapse_list(args: argparse.Namespace) -> int:
    return _emit({'collapsed': sorted(_engine(args).collapse.collapsed)})


def _server(args: argparse.Namespace) -> int:
    try:
        import uvicorn

        from .server.api import create_app
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'roadmap-board[server]'\n")
        return 1

    app = create_app(project_dir=_resolve_project_dir(args.project_dir))
    uvicorn.run(app, host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Roadmap board CLI')
    parser.add_argument('--project-dir', default=None, help='Target project directory (default: current working directory)')
    parser.add_argument('--log-level', default='WARNING', help='Log level for stderr output')
    subparsers = parser.add_subparsers(dest='command', required=True)

    server = subparsers.add_parser('server', help='Start the web server')
    server.add_argument('--host', default='127.0.0.1')
    server.add_argument('--port', default=8000, type=int)
    server.add_argument('--reload', action='store_true')
    server.set_defaults(func=_server)

    show = subparsers.add_parser('show', help='Print the whole board hierarchy')
    show.set_defaults(func=_show)

    view = subparsers.add_parser('view', help='Print the filtered board view')
    view.add_argument('--filter', default=None, choices=['all', 'not_started', 'in_progress', 'completed', 'overdue'])
    view.add_argument('--tag', type=int, action='append', default=[], help='Selected tag id (repeatable)')
    view.add_argument('--tag-mode', default=None, choices=['any', 'all'])
    view.add_argument('--group-by', default=None, choices=['none', 'tag', 'status', 'priority'])
    view.add_argument('--deadline', default=None, choices=['all', 'today', 'week', 'overdue'])
    view.add_argument('--sort', default=None, choices=['priority', 'deadline', 'title', 'created'])
    view.add_argument('--direction', default=None, choices=['asc', 'desc'])
    view.set_defaults(func=_view)

    move_task = subparsers.add_parser('move-task', help='Drop a task on a task or section')
    move_task.add_argument('item_id', type=int)
    move_task.add_argument('target', help='Sortable id of the drop target, e.g. task-3 or section-2')
    move_task.set_defaults(func=_move_task)

    move_section = subparsers.add_parser('move-section', help='Drop a section on a section or block')
    move_section.add_argument('item_id', type=int)
    move_section.add_argument('target', help='Sortable id of the drop target, e.g. section-2 or block-1')
    move_section.set_defaults(func=_move_section)

    move_block = subparsers.add_parser('move-block', help='Move a block to a position in the block list')
    move_block.add_argument('block_id', type=int)
    move_block.add_argument('index', type=int, help='0-based target position')
    move_block.set_defaults(func=_move_block)

    reorder_subtasks = subparsers.add_parser('reorder-subtasks', help='Set the order of a task\'s subtasks')
    reorder_subtasks.add_argument('task_id', type=int)
    reorder_subtasks.add_argument('ids', type=int, nargs='+')
    reorder_subtasks.set_defaults(func=_reorder_subtasks)

    add_block = subparsers.add_parser('add-block', help='Create a block')
    add_block.add_argument('title')
    add_block.add_argument('--deadline', default=None)
    add_block.set_defaults(func=_add_block)

    add_section = subparsers.add_parser('add-section', help='Create a section in a block')
    add_section.add_argument('block_id', type=int)
    add_section.add_argument('title')
    add_section.set_defaults(func=_add_section)

    add_task = subparsers.add_parser('add-task', help='Create a task in a section')
    add_task.add_argument('section_id', type=int)
    add_task.add_argument('title')
    add_task.add_argument('--status', default='not_started', choices=['not_started', 'in_progress', 'completed'])
    add_task.set_defaults(func=_add_task)

    collapse = subparsers.add_parser('collapse', help='Inspect/change collapsed groups')
    collapse_sub = collapse.add_subparsers(dest='collapse_cmd', required=True)
    ctoggle = collapse_sub.add_parser('toggle', help='Collapse or expand one group key')
    ctoggle.add_argument('key')
    ctoggle.set_defaults(func=_collapse_toggle)
    cexpand = collapse_sub.add_parser('expand-all', help='Expand every group')
    cexpand.set_defaults(func=_collapse_expand_all)
    clist = collapse_sub.add_parser('list', help='List collapsed group keys')
    clist.set_defaults(func=_collapse_list)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    return int(handler(args) or 0)


if __name__ == '__main__':
    raise SystemExit(main())
