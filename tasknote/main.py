from __future__ import annotations

import argparse
import getpass
import sys
from datetime import date, datetime, time
from pathlib import Path
from typing import Sequence

from tasknote.domain.entities import StandaloneNote, Task
from tasknote.domain.enums import WindowName
from tasknote.domain.errors import TaskNoteError
from tasknote.domain.updates import ScheduleUpdate
from tasknote.infra.api_client import ApiClient
from tasknote.infra.db import init_db
from tasknote.infra.logging import setup_logging
from tasknote.infra.session_repository import SessionRepository
from tasknote.services import projections
from tasknote.services.auth_service import AuthService, TotpEnrollment
from tasknote.services.notes_service import NotesService, all_tags, filter_by_tags
from tasknote.services.session import SessionContext
from tasknote.services.store import TaskStore
from tasknote.services.task_service import TaskService


def _alert(message: str) -> None:
    print(f"! {message}", file=sys.stderr)


def _format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    when = task.scheduled_at.strftime("%Y-%m-%d %H:%M")
    line = f"[{mark}] #{task.id} {task.title}  ({when})"
    if task.time_spent:
        line += f"  {task.time_spent:g} {task.time_unit or 'minute'}"
    if task.notes:
        line += f"  [{len(task.notes)} notes]"
    return line


def _print_tasks(tasks: list[Task]) -> None:
    if not tasks:
        print("No tasks.")
        return
    for task in projections.ordered(tasks):
        print(_format_task(task))


def _format_note(note: StandaloneNote) -> str:
    pin = "*" if note.pinned else " "
    first_line = note.content.splitlines()[0] if note.content else ""
    tags = f"  [{', '.join(note.tags)}]" if note.tags else ""
    return f"{pin} #{note.id} {first_line}{tags}"


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def _parse_month(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM, got {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tasknote", description="Day-scoped tasks with Markdown notes.")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="sign in")
    login.add_argument("username")

    sub.add_parser("logout", help="sign out and forget the stored token")

    register = sub.add_parser("register", help="create an account")
    register.add_argument("username")

    sub.add_parser("today", help="list today's tasks")

    day = sub.add_parser("day", help="list tasks scheduled on a day")
    day.add_argument("day", type=_parse_day)

    add = sub.add_parser("add", help="add a task for today")
    add.add_argument("title")
    add.add_argument("--note", default="")

    for name in ("toggle", "delete"):
        cmd = sub.add_parser(name, help=f"{name} a task")
        cmd.add_argument("task_id", type=int)
        cmd.add_argument("--day", type=_parse_day, help="day the task is scheduled on")

    rename = sub.add_parser("rename", help="change a task's title")
    rename.add_argument("task_id", type=int)
    rename.add_argument("title")
    rename.add_argument("--day", type=_parse_day)

    move = sub.add_parser("move", help="reschedule a task to another day")
    move.add_argument("task_id", type=int)
    move.add_argument("to", type=_parse_day)
    move.add_argument("--day", type=_parse_day)

    reorder = sub.add_parser("reorder", help="put a day's tasks in the given order")
    reorder.add_argument("task_ids", type=int, nargs="+")
    reorder.add_argument("--day", type=_parse_day, help="reorder this day instead of today")

    note = sub.add_parser("note", help="attach a note to a task")
    note.add_argument("task_id", type=int)
    note.add_argument("content")
    note.add_argument("--image", type=Path, help="upload an image and append it to the note")
    note.add_argument("--day", type=_parse_day)

    note_edit = sub.add_parser("note-edit", help="replace the text of a task note")
    note_edit.add_argument("task_id", type=int)
    note_edit.add_argument("note_id", type=int)
    note_edit.add_argument("content")
    note_edit.add_argument("--image", type=Path)
    note_edit.add_argument("--day", type=_parse_day)

    note_rm = sub.add_parser("note-rm", help="delete a task note")
    note_rm.add_argument("task_id", type=int)
    note_rm.add_argument("note_id", type=int)
    note_rm.add_argument("--day", type=_parse_day)

    search = sub.add_parser("search", help="search tasks and notes")
    search.add_argument("query")

    calendar = sub.add_parser("calendar", help="show per-day counts for a month")
    calendar.add_argument("--month", type=_parse_month)

    notes = sub.add_parser("notes", help="standalone notes")
    notes_sub = notes.add_subparsers(dest="notes_command", required=True)
    notes_list = notes_sub.add_parser("list", help="pinned first, then newest")
    notes_list.add_argument("--tag", action="append", default=[])
    notes_add = notes_sub.add_parser("add")
    notes_add.add_argument("content")
    notes_add.add_argument("--label", default="", help="comma-separated tags")
    notes_edit = notes_sub.add_parser("edit")
    notes_edit.add_argument("note_id", type=int)
    notes_edit.add_argument("content", nargs="?")
    notes_edit.add_argument("--label")
    for name in ("pin", "rm"):
        cmd = notes_sub.add_parser(name)
        cmd.add_argument("note_id", type=int)

    reset = sub.add_parser("reset-password", help="set a new password using the two-factor code")
    reset.add_argument("username")

    sub.add_parser("totp-status", help="show whether two-factor login is enabled")
    sub.add_parser("totp-enable", help="turn on two-factor login")
    return parser


def _load_windows(service: TaskService, day: date | None) -> None:
    if day is not None:
        service.select_date(day)
        service.refresh_today()
    else:
        service.refresh_windows()


def _with_image(service: TaskService, content: str, image: Path | None) -> str:
    if image is None:
        return content
    end = len(content)
    return service.embed_image(content + "\n", end + 1, end + 1, image)


def _run_notes(args: argparse.Namespace, notes: NotesService) -> int:
    if not notes.load():
        return 1
    if args.notes_command == "list":
        shown = filter_by_tags(notes.notes, args.tag)
        if not shown:
            print("No notes.")
        for note in shown:
            print(_format_note(note))
        tags = all_tags(notes.notes)
        if tags:
            print(f"tags: {', '.join(tags)}")
        return 0
    if args.notes_command == "add":
        note = notes.add(args.content, args.label)
    elif args.notes_command == "edit":
        note = notes.get(args.note_id)
        if note is not None and args.content is not None:
            note = notes.update_content(args.note_id, args.content)
        if note is not None and args.label is not None:
            note = notes.relabel(args.note_id, args.label)
    elif args.notes_command == "pin":
        note = notes.toggle_pin(args.note_id)
    else:
        if not notes.delete(args.note_id):
            _alert(f"Could not delete note #{args.note_id}")
            return 1
        print(f"Deleted note #{args.note_id}")
        return 0
    if note is None:
        _alert("Note was not saved")
        return 1
    print(_format_note(note))
    return 0


def _enable_totp(enrollment: TotpEnrollment) -> int:
    if enrollment.check_status():
        print("Two-factor login is already enabled")
        return 0
    secret = enrollment.start()
    if secret is None:
        _alert(enrollment.error)
        return 1
    print(f"Secret: {secret.secret}")
    print(f"Authenticator URL: {secret.url}")
    if not enrollment.verify(input("Verification code: ")):
        _alert(enrollment.error)
        return 1
    print("Two-factor login enabled")
    return 0


def run(args: argparse.Namespace, session: SessionContext, api: ApiClient) -> int:
    auth = AuthService(api, session)

    if args.command == "login":
        password = getpass.getpass("Password: ")
        result = auth.login(args.username, password)
        if result.require_2fa:
            result = auth.login(args.username, password, input("Verification code: "))
        print(f"Signed in as {session.username}")
        return 0
    if args.command == "register":
        password = getpass.getpass("Password: ")
        auth.register(args.username, password, getpass.getpass("Confirm password: "))
        print("Registered; sign in with `tasknote login`.")
        return 0
    if args.command == "reset-password":
        password = getpass.getpass("New password: ")
        confirm = getpass.getpass("Confirm password: ")
        auth.reset_password(args.username, password, confirm, input("Verification code: "))
        print("Password changed; sign in with `tasknote login`.")
        return 0
    if args.command == "logout":
        auth.logout()
        print("Signed out")
        return 0

    if not session.is_active:
        _alert("Not signed in; run `tasknote login USERNAME` first")
        return 1

    service = TaskService(api, TaskStore(), session, notify=_alert)

    if args.command == "today":
        service.refresh_today()
        stats = service.today_stats()
        print(f"{service.active_count()} open, {stats.completed}/{stats.total} done ({stats.progress}%)")
        _print_tasks(service.today_tasks)
    elif args.command == "day":
        service.select_date(args.day)
        _print_tasks(service.selected_date_tasks)
    elif args.command == "add":
        task = service.add_task(args.title, args.note)
        if task is None:
            return 1
        print(_format_task(task))
    elif args.command == "toggle":
        _load_windows(service, args.day)
        task = service.toggle_task(args.task_id)
        if task is None:
            return 1
        print(_format_task(task))
    elif args.command == "delete":
        _load_windows(service, args.day)
        if not service.delete_task(args.task_id):
            return 1
        print(f"Deleted #{args.task_id}")
    elif args.command == "rename":
        _load_windows(service, args.day)
        task = service.rename_task(args.task_id, args.title)
        if task is None:
            return 1
        print(_format_task(task))
    elif args.command == "move":
        _load_windows(service, args.day)
        current = service.store.get(args.task_id)
        clock = current.scheduled_at.time() if current else time(9, 0)
        task = service.update_task(args.task_id, ScheduleUpdate(task_time=datetime.combine(args.to, clock)))
        if task is None:
            return 1
        print(_format_task(task))
    elif args.command == "reorder":
        _load_windows(service, args.day)
        window = WindowName.SELECTED if args.day is not None else WindowName.TODAY
        loaded = {task.id: task for task in service.store.window(window)}
        missing = [task_id for task_id in args.task_ids if task_id not in loaded]
        if missing:
            _alert(f"Not scheduled on that day: {', '.join(f'#{task_id}' for task_id in missing)}")
            return 1
        changed = service.reorder_tasks([loaded[task_id] for task_id in args.task_ids], window)
        if changed is None:
            return 1
        _print_tasks(service.store.window(window))
    elif args.command == "note":
        _load_windows(service, args.day)
        content = _with_image(service, args.content, args.image)
        if service.add_note_to_task(args.task_id, content) is None:
            return 1
        print(f"Note added to #{args.task_id}")
    elif args.command == "note-edit":
        _load_windows(service, args.day)
        content = _with_image(service, args.content, args.image)
        if service.update_note(args.task_id, args.note_id, content) is None:
            return 1
        print(f"Note #{args.note_id} updated")
    elif args.command == "note-rm":
        _load_windows(service, args.day)
        if not service.delete_note(args.task_id, args.note_id):
            return 1
        print(f"Note #{args.note_id} deleted")
    elif args.command == "notes":
        if _run_notes(args, NotesService(api, session)) != 0:
            return 1
    elif args.command == "search":
        for task in service.search(args.query):
            fragments = (task.highlights.content or task.highlights.title) if task.highlights else ()
            print(_format_task(task))
            if fragments:
                print(f"    {fragments[0]}")
    elif args.command == "calendar":
        service.change_month(args.month or service.today)
        for day in projections.calendar_days(service.view_month):
            stat = service.cell_stats(day)
            if stat.total_count:
                print(f"{day.isoformat()}  {stat.completed_count}/{stat.total_count} done")
    elif args.command == "totp-status":
        enrollment = TotpEnrollment(api, session)
        print("enabled" if enrollment.check_status() else "disabled")
    elif args.command == "totp-enable":
        if _enable_totp(TotpEnrollment(api, session)) != 0:
            return 1
    return 0 if session.is_active else 1


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        init_db()
    except Exception as exc:  # noqa: BLE001
        _alert(f"Local storage error: {exc}")
        return 2

    session = SessionContext(SessionRepository())
    session.load()
    api = ApiClient(lambda: session.token)
    try:
        return run(args, session, api)
    except TaskNoteError as exc:
        _alert(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
