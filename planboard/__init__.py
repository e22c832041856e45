# Planning board: ordered lists, task lifecycle, and blocking dependencies
#
# Components:
#   schema.py       - Data model (Board, TaskList, Task, DependencyEdge, MutationSet)
#   position.py     - Fractional ranks between neighbours, rebalancing
#   containers.py   - Ordered containers with cross-container moves
#   dependencies.py - Blocking DAG with cycle rejection
#   lifecycle.py    - Status machine, progress, subtask rollup
#   board.py        - Board controller (drag gestures, list management)
#   events.py       - Event bridge for UI notifications
#   suggestions.py  - AI-generated task suggestions
#   stats.py        - Plan summaries and dashboard counts
#   store.py        - SQLite persistence layer
#   config.py       - YAML configuration
#   cli.py          - planboard command
