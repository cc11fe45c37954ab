"""Roadmap board core: hierarchy model, ordering, filtering and collapse state.

The ordering and filtering modules are pure functions over board snapshots;
persistence goes through the :mod:`~roadmap_board.board.ports` interface,
with :mod:`~roadmap_board.board.store` as the file-backed implementation.
"""
