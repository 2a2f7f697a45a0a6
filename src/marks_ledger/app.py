"""Interactive CLI application."""
import functools
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.prompt import IntPrompt, Prompt
from rich.table import Table

from marks_ledger import store
from marks_ledger.batch import BatchReconciler, load_enrollments
from marks_ledger.config import DEFAULT_DB_PATH, EXAM_PRESETS, configure_logging
from marks_ledger.db import init_db
from marks_ledger.errors import MarksLedgerError, PreconditionError
from marks_ledger.importer import import_catalog_file
from marks_ledger.ledger import LedgerSession, is_locked, validate_entry
from marks_ledger.models import BatchResult, Choice
from marks_ledger.normalize import normalize_code
from marks_ledger.optional import init_draft, optional_groups_from_exam, resolve_groups, save_draft
from marks_ledger.presets import (
    apply_preset, build_persist_payload, custom_preset, flatten_exam_groups, get_preset,
    require_enabled_full_marks, require_theory_values,
)
from marks_ledger.seed import is_seeded, seed_all

console = Console()


def show_welcome():
    console.print(Panel(
        "[bold]Exam Marks Ledger[/bold]\n[dim]Components, optional subjects and marks entry[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("exams", "List exams"),
        ("components", "Apply a preset to an exam's components"),
        ("optionals", "Choose a student's optional subjects"),
        ("marks", "Enter marks for one student"),
        ("grid", "Enter one component for a whole section"),
        ("publish", "Lock an exam"),
        ("import", "Load a subject catalog file"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def fmt_marks(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def yes(question: str, default: str = "y") -> bool:
    return Prompt.ask(question, choices=["y", "n"], default=default) == "y"


def choose_exam(db_path: str) -> dict:
    exams = store.list_exams(db_path)
    if not exams:
        raise PreconditionError("No exams found")
    for e in exams:
        status = " [red](Published)[/red]" if is_locked(e) else ""
        console.print(f"  [cyan]{e['id']}[/cyan]) {e['name']}{status}")
    exam_id = IntPrompt.ask("Select exam", choices=[str(e["id"]) for e in exams])
    return next(e for e in exams if e["id"] == exam_id)


def choose_enrollment(db_path: str, section_id: int | None = None) -> dict:
    students = store.list_enrollments(db_path, section_id)
    if not students:
        raise PreconditionError("No students found")
    for s in students:
        console.print(f"  [cyan]{s['enrollment_id']}[/cyan]) {s['full_name']} ({s['symbol_no']})")
    enrollment_id = IntPrompt.ask("Select student", choices=[str(s["enrollment_id"]) for s in students])
    return next(s for s in students if s["enrollment_id"] == enrollment_id)


def components_table(components: list) -> Table:
    table = Table(title="Exam Components")
    table.add_column("Code", style="cyan")
    table.add_column("Subject")
    table.add_column("Type")
    table.add_column("Full", justify="right")
    table.add_column("Enabled")
    for c in components:
        table.add_row(
            c.component_code, c.subject_name, c.component_type,
            fmt_marks(c.full_marks),
            "[green]yes[/green]" if c.is_enabled else "[dim]no[/dim]",
        )
    return table


def ledger_table(entries: list) -> Table:
    table = Table(title="Marks Ledger")
    table.add_column("Code", style="cyan")
    table.add_column("Subject")
    table.add_column("Component")
    table.add_column("Full", justify="right")
    table.add_column("Obtained", justify="right")
    for e in entries:
        result = validate_entry(e)
        obtained = fmt_marks(e.obtained_marks)
        if not result.valid:
            obtained = f"[red]{obtained}[/red] [dim]{result.reason}[/dim]"
        table.add_row(e.component_code, e.subject_name, e.component_title, fmt_marks(e.full_marks), obtained)
    return table


def prompt_preset():
    key = Prompt.ask("Preset", choices=list(EXAM_PRESETS), default="FIRST_TERMINAL")
    if key != "CUSTOM":
        return get_preset(key)
    th_full = Prompt.ask("Theory full marks", default="")
    optional_full = Prompt.ask("Optional (computer/hotel) full marks", default="")
    enable_internal = yes("Enable internal/practical components?", default="n")
    internal_full = Prompt.ask("Internal/practical full marks", default="") if enable_internal else None
    return custom_preset(th_full, optional_full, enable_internal, internal_full)


def cmd_exams(db_path: str):
    table = Table(title="Exams")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Status")
    for e in store.list_exams(db_path):
        status = "[red]Published[/red]" if is_locked(e) else "[green]Open[/green]"
        table.add_row(str(e["id"]), e["name"], e["exam_type"] or "", status)
    console.print(table)


def cmd_components(db_path: str):
    exam = choose_exam(db_path)
    data = store.get_exam_components(db_path, exam["id"])
    components = flatten_exam_groups(data["groups"])
    if is_locked(data["exam"]):
        console.print(components_table(components))
        console.print("[yellow]Exam is locked/published. Editing is disabled.[/yellow]")
        return
    preset = prompt_preset()
    require_theory_values(preset)
    components = apply_preset(components, preset)
    console.print(components_table(components))
    if not yes("Save this configuration?"):
        console.print("[dim]Changes discarded.[/dim]")
        return
    require_enabled_full_marks(components)
    store.set_exam_components(db_path, exam["id"], build_persist_payload(components))
    console.print("[green]Exam components saved[/green]")


def cmd_optionals(db_path: str):
    student = choose_enrollment(db_path)
    enrollment_id = student["enrollment_id"]
    profile = store.get_student_profile(db_path, enrollment_id)
    enrollment = profile["enrollment"]
    catalog = store.get_subject_catalog(db_path, enrollment["academic_year_id"], enrollment["class_id"])
    groups = resolve_groups(catalog, profile["optional_choices"], profile["optional_subjects"])
    if not groups:
        console.print("[yellow]No optional groups found.[/yellow]")
        return

    draft = init_draft(profile["optional_choices"])
    for group in groups:
        console.print(f"\n[bold]{group.group_name}[/bold]")
        for s in group.subjects:
            code = f" ({s.code})" if s.code else ""
            console.print(f"  [cyan]{s.id}[/cyan]) {s.name}{code}")
        current = draft.selections.get(group.group_name)
        answer = Prompt.ask("Subject id", default=str(current or "")).strip()
        if answer and answer not in {str(s.id) for s in group.subjects}:
            console.print(f"[red]{answer} is not in {group.group_name}; keeping the current choice.[/red]")
            continue
        draft.select(group.group_name, answer or None)

    if not draft.dirty:
        return
    save_draft(draft, enrollment_id, functools.partial(store.set_optional_choices, db_path))
    console.print("[green]Optional subjects saved[/green]")


def cmd_marks(db_path: str):
    exam = choose_exam(db_path)
    student = choose_enrollment(db_path)
    session = LedgerSession(
        exam, student["enrollment_id"],
        functools.partial(store.get_mark_ledger, db_path),
        functools.partial(store.upsert_marks, db_path),
    )
    session.load()
    if not session.persisted:
        console.print("[yellow]No enabled components for this student.[/yellow]")
        return

    while True:
        console.print(ledger_table(session.entries()))
        code = Prompt.ask("Component code [dim](blank to finish)[/dim]", default="").strip()
        if not code:
            break
        value = Prompt.ask(f"Marks for {normalize_code(code)}", default="")
        try:
            session.edit(code, value)
        except PreconditionError as e:
            console.print(f"[red]{e}[/red]")

    if not session.pending_updates() and not session.invalid_entries():
        console.print("[dim]Nothing to save.[/dim]")
        return
    outcome = session.save()
    console.print(f"[green]Marks saved ({len(outcome.sent)} changed)[/green]")
    for err in outcome.invalid:
        console.print(f"[red]Not saved: {err}[/red]")


def run_grid_save(reconciler: BatchReconciler, save_fn, choice_save_fn=None) -> BatchResult:
    """Save a grid with a progress bar, then list any failed students."""
    names = {e.enrollment_id: e.full_name for e in reconciler.enrollments}
    with Progress(
        TextColumn("[bold]Saving[/bold]"), BarColumn(), TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        task = progress.add_task("save", total=len(reconciler.enrollments))
        result = reconciler.save_all(
            save_fn,
            on_progress=lambda p: progress.update(task, completed=p.done, total=p.total),
            choice_save_fn=choice_save_fn,
        )

    if not result.failed:
        console.print(f"[green]Saved all ({result.succeeded})[/green]")
        return result
    console.print(f"[yellow]Saved with {len(result.failed)} error(s).[/yellow]")
    table = Table(title="Failed")
    table.add_column("Enrollment", justify="right")
    table.add_column("Student")
    table.add_column("Reason", style="red")
    for failure in result.failed:
        table.add_row(str(failure.enrollment_id), names.get(failure.enrollment_id, ""), failure.reason)
    console.print(table)
    return result


def grid_table(reconciler: BatchReconciler) -> Table:
    table = Table(title="Section Totals")
    table.add_column("Student")
    table.add_column("Total", justify="right")
    table.add_column("Changed")
    for e in reconciler.enrollments:
        changed = "[yellow]yes[/yellow]" if reconciler.is_row_dirty(e.enrollment_id) else "[dim]no[/dim]"
        table.add_row(e.full_name, fmt_marks(reconciler.row_total(e.enrollment_id)), changed)
    return table


def merged_choice_saver(db_path: str):
    """Save grid choices on top of the student's other saved groups."""
    def save(enrollment_id, choices):
        saved = store.get_student_profile(db_path, enrollment_id)["optional_choices"]
        merged = {c["group_name"]: c["subject_id"] for c in saved}
        merged.update({c.group_name: c.subject_id for c in choices})
        store.set_optional_choices(db_path, enrollment_id, [Choice(g, s) for g, s in merged.items()])
    return save


def prompt_optional_codes(reconciler: BatchReconciler):
    for group in reconciler.optional_groups:
        codes = ", ".join(f"{s.code} {s.name}" for s in group.subjects)
        console.print(f"\n[bold]{group.group_name}[/bold] [dim]{codes}[/dim]")
        for e in reconciler.enrollments:
            current = reconciler.optional_codes.get(e.enrollment_id, {}).get(group.group_name, "")
            code = Prompt.ask(f"{e.full_name} ({e.symbol_no})", default=current).strip()
            if code and normalize_code(code) != current:
                reconciler.set_optional_code(e.enrollment_id, group.group_name, code)


def cmd_grid(db_path: str):
    exam = choose_exam(db_path)
    if is_locked(exam):
        console.print("[yellow]Exam is locked/published. Cannot save.[/yellow]")
        return
    section_id = IntPrompt.ask("Section id", default=1)
    students = store.list_enrollments(db_path, section_id)
    if not students:
        console.print("[yellow]No students found[/yellow]")
        return
    enrollments = load_enrollments(exam["id"], students, functools.partial(store.get_mark_ledger, db_path))
    optional_groups = optional_groups_from_exam(store.get_exam_components(db_path, exam["id"])["groups"])
    reconciler = BatchReconciler(exam, enrollments, optional_groups=optional_groups)
    if not reconciler.columns:
        console.print("[yellow]No enabled components for this section.[/yellow]")
        return

    if optional_groups and yes("Change optional subjects?", default="n"):
        prompt_optional_codes(reconciler)

    for c in reconciler.columns:
        console.print(f"  [cyan]{c.code}[/cyan] {c.subject_name}: {c.title} [dim](full {fmt_marks(c.full_marks)})[/dim]")
    code = Prompt.ask("Component code", choices=[c.code for c in reconciler.columns])
    names = {}
    for e in enrollments:
        names[e.enrollment_id] = e.full_name
        # students who don't take this component have no ledger row for it
        if code not in {entry.component_code for entry in e.ledger}:
            continue
        current = reconciler.cell(e.enrollment_id, code).obtained_marks
        value = Prompt.ask(f"{e.full_name} ({e.symbol_no})", default=fmt_marks(current))
        reconciler.set_mark(e.enrollment_id, code, value)

    console.print(grid_table(reconciler))
    for cell, reason in reconciler.invalid_cells():
        console.print(f"[red]{names[cell.enrollment_id]} {cell.component_code}: {reason}[/red]")
    run_grid_save(
        reconciler,
        functools.partial(store.upsert_marks, db_path, exam["id"]),
        choice_save_fn=merged_choice_saver(db_path) if optional_groups else None,
    )


def cmd_publish(db_path: str):
    exam = choose_exam(db_path)
    if not yes(f"Publish and lock '{exam['name']}'? Marks can no longer be edited.", default="n"):
        return
    store.lock_exam(db_path, exam["id"])
    console.print(f"[green]{exam['name']} published[/green]")


def cmd_import(db_path: str):
    file_path = Prompt.ask("File path")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    result = import_catalog_file(db_path, file_path)
    console.print(
        f"[green]Imported {result['filename']}: {result['subjects']} subjects, "
        f"{result['students']} students, {result['exams']} exams[/green]"
    )


COMMANDS = {
    "exams": cmd_exams,
    "components": cmd_components,
    "optionals": cmd_optionals,
    "marks": cmd_marks,
    "grid": cmd_grid,
    "publish": cmd_publish,
    "import": cmd_import,
}


def main():
    configure_logging()
    db_path = DEFAULT_DB_PATH
    init_db(db_path)
    first_run = not is_seeded(db_path)
    if first_run:
        console.print("[dim]Setting up for first use...[/dim]")
    seed_all(db_path)
    if first_run:
        console.print("[green]Ready![/green]\n")

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="marks").strip().lower()
        if choice in ("quit", "exit", "q"):
            console.print("[dim]Goodbye.[/dim]")
            break
        command = COMMANDS.get(choice)
        if command is None:
            console.print("[red]Unknown command. Try again.[/red]")
            continue
        try:
            command(db_path)
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except MarksLedgerError as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
