"""
planboard — command-line entry point

Usage:
    planboard boards                                  # list boards
    planboard new-board "Marketing"                   # create a board
    planboard add-list <board_id> "To Do"             # append a list
    planboard add-task <board_id> <list_id> "Title"   # append a task
    planboard show <board_id>                         # lists, tasks, blockers
    planboard rebalance <board_id>                    # respace crowded positions
    planboard import <board_id> <list_id> plan.json   # load AI suggestions
    planboard suggest <board_id> <list_id> "Q3 launch"  # ask the AI endpoint
"""
import argparse
import logging
import sys
from pathlib import Path

from .board import BoardController
from .config import Config
from .errors import PlanningError
from .stats import plan_summary
from .store import PlanStore
from .suggestions import SuggestionClient, parse_suggestions

logger = logging.getLogger(__name__)


def _controller(store: PlanStore, cfg: Config, board_id: str) -> BoardController:
    snap = store.load_board(board_id)
    return BoardController.from_snapshot(snap.board, snap.lists, snap.tasks, snap.edges, config=cfg)


# ── Commands ───────────────────────────────────────────────────────────────

def cmd_boards(store, cfg, args):
    boards = store.list_boards()
    if not boards:
        print("No boards.")
    for board in boards:
        print(f"{board.id}  {board.name}")


def cmd_new_board(store, cfg, args):
    board = store.create_board(args.name, args.color)
    print(board.id)


def cmd_add_list(store, cfg, args):
    controller = _controller(store, cfg, args.board_id)
    task_list, mutations = controller.add_list(args.name)
    store.apply(mutations)
    print(task_list.id)


def cmd_add_task(store, cfg, args):
    controller = _controller(store, cfg, args.board_id)
    task, mutations = controller.add_task(args.list_id, args.title)
    store.apply(mutations)
    print(task.id)


def cmd_show(store, cfg, args):
    controller = _controller(store, cfg, args.board_id)
    print(f"{controller.board.name} ({controller.board.id})")
    summary = plan_summary(controller.lifecycle.tasks.values())
    print(f"{summary.task_count} task(s), {summary.completed_count} completed, {summary.overall_progress}% overall")
    for task_list in controller.ordered_lists():
        print(f"\n■ {task_list.name}")
        for depth, task in controller.lifecycle.walk(task_list.id):
            line = f"{'  ' * (depth + 1)}- [{task.status.value}] {task.title} {task.progress}%"
            blockers = controller.blocked_by_titles(task.id)
            if blockers and task.status.is_open:
                line += f"  (Blocked by: {', '.join(blockers)})"
            print(line)


def cmd_rebalance(store, cfg, args):
    controller = _controller(store, cfg, args.board_id)
    mutations = controller.rebalance_stale()
    print(f"Rebalanced {store.apply(mutations)} row(s)")


def cmd_import(store, cfg, args):
    controller = _controller(store, cfg, args.board_id)
    suggestions = parse_suggestions(Path(args.file).read_text())
    created, mutations = controller.import_suggestions(args.list_id, suggestions)
    store.apply(mutations)
    print(f"Imported {len(created)} task(s)")


def cmd_suggest(store, cfg, args):
    if not cfg.suggestions_url:
        raise PlanningError("suggestions_url is not configured")
    controller = _controller(store, cfg, args.board_id)
    client = SuggestionClient(cfg.suggestions_url, timeout=cfg.suggestions_timeout)
    suggestions = client.generate(args.goal, duration=args.duration)
    created, mutations = controller.import_suggestions(args.list_id, suggestions)
    store.apply(mutations)
    print(f"Imported {len(created)} suggested task(s)")


COMMANDS = {
    "boards": cmd_boards,
    "new-board": cmd_new_board,
    "add-list": cmd_add_list,
    "add-task": cmd_add_task,
    "show": cmd_show,
    "rebalance": cmd_rebalance,
    "import": cmd_import,
    "suggest": cmd_suggest,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="planboard", description="Planning board: lists, tasks and dependencies")
    ap.add_argument("--config", default=None, help="Path to planboard.yaml")
    ap.add_argument("--db", default=None, help="SQLite database path (overrides config and PLANBOARD_DB)")
    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("boards", help="List boards")

    p = sub.add_parser("new-board", help="Create a board")
    p.add_argument("name")
    p.add_argument("--color", default=None)

    p = sub.add_parser("add-list", help="Append a list to a board")
    p.add_argument("board_id")
    p.add_argument("name")

    p = sub.add_parser("add-task", help="Append a task to a list")
    p.add_argument("board_id")
    p.add_argument("list_id")
    p.add_argument("title")

    p = sub.add_parser("show", help="Show a board with ordered tasks and blockers")
    p.add_argument("board_id")

    p = sub.add_parser("rebalance", help="Respace lists and tasks whose positions got too close")
    p.add_argument("board_id")

    p = sub.add_parser("import", help="Import AI suggestions from a JSON file")
    p.add_argument("board_id")
    p.add_argument("list_id")
    p.add_argument("file")

    p = sub.add_parser("suggest", help="Ask the AI endpoint for tasks towards a goal")
    p.add_argument("board_id")
    p.add_argument("list_id")
    p.add_argument("goal")
    p.add_argument("--duration", default=None, help="e.g. '3 months'")
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    cfg = Config.load(args.config)
    if args.db:
        cfg.db_path = str(Path(args.db).expanduser())

    logging.basicConfig(
        level=getattr(logging, str(cfg.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    store = PlanStore(cfg.db_path)
    try:
        COMMANDS[args.command](store, cfg, args)
    except PlanningError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
