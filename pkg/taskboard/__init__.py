# Task board: ordered three-column boards with optimistic drag-and-drop
#
# Components:
#   schema.py      - Data model (Task, Board, ColumnId, OptimisticUpdate, ...)
#   store.py       - SQLite persistence layer
#   ordering.py    - Ordering engine: gap-free order per (board, column)
#   projection.py  - Flat task list -> todo/doing/done buckets
#   optimistic.py  - Client-side overlay of in-flight moves
#   drag.py        - Drag session controller (gesture events -> moves)
#   commands.py    - Typed, validated mutation commands
#   access.py      - Board membership authorization
#   events.py      - Per-board change subscriptions
#   boards.py      - Boards, members, invitations
#   notes.py       - Per-task notes
#   client.py      - HTTP client for board_server.py
#   config.py      - YAML/env settings
