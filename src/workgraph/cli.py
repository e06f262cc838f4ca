"""Command-line interface for task graph management."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from . import lifecycle
from .config import Settings, load_settings, setup_logging
from .errors import IncompleteChildren, WorkgraphError
from .ids import normalize_id
from .task_graph import BlockerNode, TaskGraph
from .task_node import (
    CodeRef,
    SectionType,
    TaskFilter,
    TaskLevel,
    TaskNode,
    TaskPriority,
    TaskStatus,
    TaskUpdate,
)
from .transfer import export_graph, import_graph

app = typer.Typer(help="Workgraph - task graph and lifecycle management")
console = Console()
err_console = Console(stderr=True)

STATUS_COLORS = {
    TaskStatus.BACKLOG: "dim",
    TaskStatus.TODO: "yellow",
    TaskStatus.IN_PROGRESS: "blue",
    TaskStatus.PENDING_REVIEW: "magenta",
    TaskStatus.DONE: "green",
    TaskStatus.REJECTED: "red",
}

PRIORITY_COLORS = {
    TaskPriority.LOW: "dim",
    TaskPriority.MEDIUM: "white",
    TaskPriority.HIGH: "yellow",
    TaskPriority.CRITICAL: "red bold",
}


@app.callback()
def main(
    ctx: typer.Context,
    db_path: Optional[str] = typer.Option(None, "--db", help="Database path (default: $WORKGRAPH_DB or .workgraph/tasks.db)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Manage a graph of tasks: hierarchy, dependencies and lifecycle."""
    settings = load_settings(db_path, verbose)
    setup_logging(settings)
    ctx.obj = settings


def get_task_graph(ctx: typer.Context) -> TaskGraph:
    """Get task graph instance for the configured database."""
    settings: Settings = ctx.obj if isinstance(ctx.obj, Settings) else load_settings()
    return TaskGraph(settings.db_path)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn domain errors into a red message and exit status 1."""
    try:
        yield
    except IncompleteChildren as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        for child in e.children:
            console.print(f"  - {child.id} ({child.title}) [{child.status.value}]", markup=False)
        raise typer.Exit(1)
    except (WorkgraphError, ValidationError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def format_task_status(status: TaskStatus) -> Text:
    """Format task status with colors."""
    return Text(status.value.upper(), style=STATUS_COLORS.get(status, "white"))


def format_task_priority(priority: Optional[TaskPriority]) -> Text:
    """Format task priority with colors."""
    if priority is None:
        return Text("-", style="dim")
    return Text(priority.value.upper(), style=PRIORITY_COLORS.get(priority, "white"))


def task_label(task: TaskNode) -> Text:
    label = Text(f"{task.id}  ", style="dim")
    label.append(f"[{task.level.value}] {task.title} ")
    label.append(f"({task.status.value})", style=STATUS_COLORS.get(task.status, "white"))
    return label


def print_result(result: object) -> None:
    console.print(str(result), markup=False, highlight=False)


def _split_tags(tags: Optional[str]) -> List[str]:
    if not tags:
        return []
    return [tag.strip() for tag in tags.split(",") if tag.strip()]


# Task CRUD


@app.command()
def add(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="Task title"),
    level: TaskLevel = typer.Option(TaskLevel.TASK, "--level", "-l", help="Hierarchy level"),
    status: TaskStatus = typer.Option(TaskStatus.TODO, "--status", "-s", help="Initial status"),
    backlog: bool = typer.Option(False, "--backlog", help="Create in backlog (same as --status backlog)"),
    description: Optional[str] = typer.Option(None, "--desc", "-d", help="Task description"),
    priority: Optional[TaskPriority] = typer.Option(None, "--priority", help="Task priority"),
    tags: Optional[str] = typer.Option(None, "--tags", "-t", help="Comma-separated tags"),
    parent: Optional[str] = typer.Option(None, "--parent", "-p", help="Parent task ID"),
    depends_on: Optional[List[str]] = typer.Option(None, "--depends-on", help="Blocker task ID (repeatable)"),
    task_id: Optional[str] = typer.Option(None, "--id", help="Explicit task ID"),
):
    """Create a new task."""
    graph = get_task_graph(ctx)

    with handle_errors():
        task = graph.create_task(
            title=title,
            level=level,
            status=TaskStatus.BACKLOG if backlog else status,
            description=description,
            priority=priority,
            tags=_split_tags(tags),
            parent_id=parent,
            depends_on=depends_on or [],
            task_id=task_id,
        )

    console.print(f"[green]Created task: {escape(task.id)}[/green]")
    console.print(f"Title: {escape(task.title)}")


@app.command("list")
def list_tasks(
    ctx: typer.Context,
    status: Optional[List[TaskStatus]] = typer.Option(None, "--status", "-s", help="Filter by status (repeatable)"),
    level: Optional[List[TaskLevel]] = typer.Option(None, "--level", "-l", help="Filter by level (repeatable)"),
    priority: Optional[List[TaskPriority]] = typer.Option(None, "--priority", "-p", help="Filter by priority (repeatable)"),
    tag: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="Require tag (repeatable)"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Search title and description"),
    roots: bool = typer.Option(False, "--roots", help="Only tasks without a parent"),
    children_of: Optional[str] = typer.Option(None, "--children-of", help="Only direct children of this task"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Include done tasks"),
):
    """List tasks with optional filtering."""
    graph = get_task_graph(ctx)
    tasks = graph.tasks.list(TaskFilter(
        statuses=status or [],
        levels=level or [],
        priorities=priority or [],
        tags=tag or [],
        search=query,
        root_only=roots,
        children_of=children_of,
        include_done=show_all,
    ))

    if not tasks:
        console.print("[yellow]No tasks found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Level")
    table.add_column("Title", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Priority", justify="center")
    table.add_column("Tags")

    for task in tasks:
        table.add_row(
            task.id,
            task.level.value,
            Text(task.title),
            format_task_status(task.status),
            format_task_priority(task.priority),
            Text(", ".join(task.tags)),
        )

    console.print(table)


@app.command()
def show(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
):
    """Show detailed information about a task."""
    graph = get_task_graph(ctx)

    with handle_errors():
        task = graph.require_task(task_id)
        lineage = graph.get_lineage(task.id)

    info_lines = [
        f"ID: {task.id}",
        f"Title: {task.title}",
        f"Level: {task.level.value}",
        f"Status: {task.status.value}",
        f"Priority: {task.priority.value if task.priority else '-'}",
        f"Created: {task.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"Updated: {task.updated_at.strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    if task.started_at:
        info_lines.append(f"Started: {task.started_at.strftime('%Y-%m-%d %H:%M:%S')}")
    if task.completed_at:
        info_lines.append(f"Completed: {task.completed_at.strftime('%Y-%m-%d %H:%M:%S')}")
    if task.needs_human_review:
        info_lines.append("Needs human review: yes")
    if task.description:
        info_lines.append(f"Description: {task.description}")
    if task.tags:
        info_lines.append(f"Tags: {', '.join(task.tags)}")

    console.print(Panel(escape("\n".join(info_lines)), title="Task Information"))

    for section_type in SectionType:
        sections = task.sections_of(section_type)
        if not sections:
            continue
        console.print(f"\n[bold]{section_type.value.replace('_', ' ').title()}:[/bold]")
        for section in sections:
            prefix = ""
            if section.order is not None:
                prefix = f"{section.order}. "
            if section.done:
                prefix += "[x] "
            elif section_type == SectionType.STEP:
                prefix += "[ ] "
            console.print(f"  {prefix}{section.content}", markup=False)

    if task.refs:
        console.print("\n[bold]References:[/bold]")
        for ref in task.refs:
            line = ref.location()
            if ref.name:
                line += f" ({ref.name})"
            if ref.description:
                line += f" - {ref.description}"
            console.print(f"  - {line}", markup=False)

    if len(lineage) > 1:
        console.print("\n[bold]Task Lineage:[/bold]")
        tree = Tree(task_label(lineage[0]))
        current_tree = tree
        for ancestor in lineage[1:]:
            current_tree = current_tree.add(task_label(ancestor))
        console.print(tree)

    children = graph.get_children(task.id)
    if children:
        console.print(f"\n[bold]Children ({len(children)}):[/bold]")
        for child in children:
            console.print(Text("  - ").append(task_label(child)))

    blockers = [graph.get_task(b) for b in graph.relationships.get_dependencies(task.id)]
    if blockers:
        console.print(f"\n[bold]Depends on ({len(blockers)}):[/bold]")
        for blocker in blockers:
            if blocker is not None:
                console.print(Text("  - ").append(task_label(blocker)))

    dependents = [graph.get_task(d) for d in graph.relationships.get_dependents(task.id)]
    if dependents:
        console.print(f"\n[bold]Blocks ({len(dependents)}):[/bold]")
        for dependent in dependents:
            if dependent is not None:
                console.print(Text("  - ").append(task_label(dependent)))


@app.command()
def update(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    title: Optional[str] = typer.Option(None, "--title", help="Update title"),
    description: Optional[str] = typer.Option(None, "--desc", help="Update description"),
    level: Optional[TaskLevel] = typer.Option(None, "--level", help="Update level"),
    priority: Optional[TaskPriority] = typer.Option(None, "--priority", help="Update priority"),
    clear_priority: bool = typer.Option(False, "--clear-priority", help="Remove the priority"),
    add_tags: Optional[str] = typer.Option(None, "--add-tags", help="Comma-separated tags to add"),
    remove_tags: Optional[str] = typer.Option(None, "--remove-tags", help="Comma-separated tags to remove"),
):
    """Update task fields. Use the lifecycle commands to change status."""
    graph = get_task_graph(ctx)

    changes = {}
    if title is not None:
        changes["title"] = title
    if description is not None:
        changes["description"] = description
    if level is not None:
        changes["level"] = level
    if clear_priority:
        changes["priority"] = None
    elif priority is not None:
        changes["priority"] = priority
    if add_tags:
        changes["add_tags"] = _split_tags(add_tags)
    if remove_tags:
        changes["remove_tags"] = _split_tags(remove_tags)

    with handle_errors():
        updates = TaskUpdate(**changes)
        if not updates.has_updates():
            console.print("[yellow]Nothing to update[/yellow]")
            return
        task = graph.tasks.update(task_id, updates)

    console.print(f"[green]Updated task {escape(task.id)}[/green]")


@app.command()
def delete(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    cascade: bool = typer.Option(False, "--cascade", help="Also delete all descendants"),
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation"),
):
    """Delete a task and every edge touching it."""
    graph = get_task_graph(ctx)

    with handle_errors():
        task = graph.require_task(task_id)
        if not force:
            what = "and all its descendants" if cascade else "(children become root tasks)"
            typer.confirm(f"Delete task {task.id} {task.get_summary()} {what}?", abort=True)
        deleted = graph.delete_task(task.id, cascade=cascade)

    console.print(f"[green]Deleted {len(deleted)} task(s): {escape(', '.join(deleted))}[/green]")


# Lifecycle


@app.command()
def triage(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
):
    """Move a task from backlog to todo."""
    graph = get_task_graph(ctx)
    with handle_errors():
        print_result(lifecycle.triage(graph, task_id))


@app.command()
def start(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
):
    """Start working on a task."""
    graph = get_task_graph(ctx)
    with handle_errors():
        print_result(lifecycle.start(graph, task_id))


@app.command()
def submit(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
):
    """Submit a task for review."""
    graph = get_task_graph(ctx)
    with handle_errors():
        print_result(lifecycle.submit(graph, task_id))


@app.command()
def done(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
):
    """Mark a reviewed task as done."""
    graph = get_task_graph(ctx)
    with handle_errors():
        print_result(lifecycle.complete(graph, task_id))


@app.command()
def reject(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    reason: Optional[str] = typer.Option(None, "--reason", "-r", help="Why the task is rejected"),
):
    """Reject a task."""
    graph = get_task_graph(ctx)
    with handle_errors():
        print_result(lifecycle.reject(graph, task_id, reason))


@app.command("transition-to")
def transition_to(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    target: TaskStatus = typer.Argument(..., help="Target status"),
    force: bool = typer.Option(False, "--force", help="Proceed despite validation warnings"),
    skip_validation: bool = typer.Option(False, "--skip-validation", help="Skip section validation"),
    reason: Optional[str] = typer.Option(None, "--reason", "-r", help="Rejection reason"),
):
    """Move a task to any status allowed by the state machine."""
    graph = get_task_graph(ctx)
    with handle_errors():
        print_result(lifecycle.transition_to(
            graph,
            task_id,
            target,
            reason=reason,
            force=force,
            skip_validation=skip_validation,
        ))


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "no", "n", "off"}:
        return False
    raise typer.BadParameter(f"expected true or false, got '{raw}'")


@app.command()
def review(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    value: Optional[str] = typer.Option(None, "--set", help="Set the flag to true or false instead of toggling"),
):
    """Toggle (or set) the needs-human-review flag."""
    graph = get_task_graph(ctx)
    flag = _parse_bool(value) if value is not None else None
    with handle_errors():
        print_result(lifecycle.toggle_review(graph, task_id, flag))


# Content


@app.command()
def section(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    section_type: SectionType = typer.Argument(..., help="Section type"),
    content: str = typer.Argument(..., help="Section content"),
):
    """Add a documentation section to a task."""
    graph = get_task_graph(ctx)
    with handle_errors():
        print_result(graph.tasks.add_section(task_id, section_type, content))


@app.command()
def unsection(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    section_type: Optional[SectionType] = typer.Argument(None, help="Section type"),
    index: Optional[int] = typer.Option(None, "--index", "-i", help="Ordinal of the section to remove"),
    remove_all: bool = typer.Option(False, "--all", "-a", help="Remove all sections (of the type, if given)"),
):
    """Remove documentation sections from a task."""
    graph = get_task_graph(ctx)
    with handle_errors():
        print_result(graph.tasks.remove_sections(task_id, section_type, index=index, all_sections=remove_all))


@app.command("step-done")
def step_done(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    index: int = typer.Argument(..., help="Step number (1-based)"),
):
    """Mark an implementation step as done."""
    graph = get_task_graph(ctx)
    with handle_errors():
        step = graph.tasks.mark_step_done(task_id, index)
    console.print(f"Marked step {index} done: {step.content}", markup=False, highlight=False)


@app.command()
def ref(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    path: str = typer.Argument(..., help="Referenced file path"),
    line_start: Optional[int] = typer.Option(None, "--start", help="First line"),
    line_end: Optional[int] = typer.Option(None, "--end", help="Last line"),
    name: Optional[str] = typer.Option(None, "--name", help="Symbol name"),
    description: Optional[str] = typer.Option(None, "--desc", help="What the reference is about"),
):
    """Attach a code reference to a task."""
    graph = get_task_graph(ctx)
    with handle_errors():
        code_ref = CodeRef(
            path=path,
            line_start=line_start,
            line_end=line_end,
            name=name,
            description=description,
        )
        task = graph.tasks.add_ref(task_id, code_ref)
    console.print(f"Added reference {code_ref.location()} to task: {task.id}", markup=False, highlight=False)


@app.command()
def unref(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    path: Optional[str] = typer.Argument(None, help="Referenced file path"),
    remove_all: bool = typer.Option(False, "--all", "-a", help="Remove every reference"),
):
    """Remove code references from a task."""
    graph = get_task_graph(ctx)
    with handle_errors():
        print_result(graph.tasks.remove_refs(task_id, path, all_refs=remove_all))


# Relationships


@app.command()
def depend(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task that is blocked"),
    blocker_id: str = typer.Argument(..., help="Task that blocks it"),
):
    """Record that a task depends on another."""
    graph = get_task_graph(ctx)
    with handle_errors():
        graph.relationships.create_depends_on(task_id, blocker_id)
    console.print(f"[green]{escape(normalize_id(task_id))} now depends on {escape(normalize_id(blocker_id))}[/green]")


@app.command()
def undepend(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task that is blocked"),
    blocker_id: str = typer.Argument(..., help="Task that blocks it"),
):
    """Remove a dependency."""
    graph = get_task_graph(ctx)
    with handle_errors():
        removed = graph.relationships.remove_depends_on(task_id, blocker_id)
    if removed:
        console.print(f"[green]Removed dependency {escape(normalize_id(task_id))} -> {escape(normalize_id(blocker_id))}[/green]")
    else:
        console.print("[yellow]No such dependency[/yellow]")


@app.command()
def parent(
    ctx: typer.Context,
    child_id: str = typer.Argument(..., help="Child task ID"),
    parent_id: str = typer.Argument(..., help="Parent task ID"),
):
    """Make a task the child of another."""
    graph = get_task_graph(ctx)
    with handle_errors():
        graph.relationships.create_child_of(child_id, parent_id)
    console.print(f"[green]{escape(normalize_id(child_id))} is now a child of {escape(normalize_id(parent_id))}[/green]")


@app.command()
def unparent(
    ctx: typer.Context,
    child_id: str = typer.Argument(..., help="Child task ID"),
):
    """Detach a task from its parent."""
    graph = get_task_graph(ctx)
    with handle_errors():
        graph.require_task(child_id)
        removed = graph.relationships.remove_child_of(child_id)
    if removed:
        console.print(f"[green]{escape(normalize_id(child_id))} is now a root task[/green]")
    else:
        console.print("[yellow]Task has no parent[/yellow]")


# Queries


@app.command()
def blockers(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    depth: Optional[int] = typer.Option(None, "--depth", help="Maximum depth to follow"),
):
    """Show the tree of tasks blocking a task."""
    graph = get_task_graph(ctx)
    with handle_errors():
        task = graph.require_task(task_id)
        nodes = graph.get_blockers(task.id, max_depth=depth)

    if not nodes:
        console.print(f"Task {task.id} has no blockers", markup=False)
        return

    def add_nodes(tree_node: Tree, children: List[BlockerNode]) -> None:
        for node in children:
            label = Text(f"{node.id}  ", style="dim")
            label.append(f"[{node.level.value}] {node.title} ")
            label.append(f"({node.status.value})", style=STATUS_COLORS.get(node.status, "white"))
            add_nodes(tree_node.add(label), node.children)

    tree = Tree(task_label(task))
    add_nodes(tree, nodes)
    console.print(tree)


@app.command()
def path(
    ctx: typer.Context,
    from_id: str = typer.Argument(..., help="Start task ID"),
    to_id: str = typer.Argument(..., help="End task ID"),
):
    """Find a dependency chain between two tasks."""
    graph = get_task_graph(ctx)
    with handle_errors():
        chain = graph.find_path(from_id, to_id)

    if chain is None:
        console.print(f"No dependency path from {normalize_id(from_id)} to {normalize_id(to_id)}", markup=False)
        raise typer.Exit(1)
    console.print(" -> ".join(chain), markup=False, highlight=False)


@app.command()
def ready(
    ctx: typer.Context,
    status: TaskStatus = typer.Option(TaskStatus.TODO, "--status", "-s", help="Status to look for"),
):
    """List tasks that are ready to be worked on."""
    graph = get_task_graph(ctx)
    tasks = graph.list_ready(status)

    if not tasks:
        console.print("[yellow]No ready tasks[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Level")
    table.add_column("Title", style="bold")
    table.add_column("Priority", justify="center")

    for task in tasks:
        table.add_row(task.id, task.level.value, Text(task.title), format_task_priority(task.priority))

    console.print(table)


@app.command()
def tree(
    ctx: typer.Context,
    root_id: Optional[str] = typer.Option(None, "--root", help="Root task ID (shows all roots if not provided)"),
):
    """Show task tree visualization."""
    graph = get_task_graph(ctx)

    def build_tree(task: TaskNode, tree_node: Tree) -> None:
        """Recursively build tree visualization."""
        children = graph.get_children(task.id)
        for child in sorted(children, key=lambda t: (t.created_at, t.id)):
            build_tree(child, tree_node.add(task_label(child)))

    if root_id:
        with handle_errors():
            root_task = graph.require_task(root_id)
        root_tree = Tree(task_label(root_task))
        build_tree(root_task, root_tree)
        console.print(root_tree)
        return

    roots = graph.get_root_tasks()
    if not roots:
        console.print("[yellow]No tasks found[/yellow]")
        return

    for i, root in enumerate(roots):
        if i > 0:
            console.print()
        root_tree = Tree(task_label(root))
        build_tree(root, root_tree)
        console.print(root_tree)


@app.command()
def stats(ctx: typer.Context):
    """Show task statistics."""
    graph = get_task_graph(ctx)
    task_stats = graph.get_task_stats()

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")

    for key, value in task_stats.items():
        table.add_row(key.replace("_", " ").title(), str(value))

    console.print(table)


# Transfer


@app.command()
def export(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: stdout)"),
):
    """Export all tasks and relationships as JSON lines."""
    graph = get_task_graph(ctx)
    with handle_errors():
        result = export_graph(graph, output_path=output)
    # Keep stdout clean when it carries the export itself
    target = err_console if output is None else console
    target.print(str(result), markup=False, highlight=False)


@app.command("import")
def import_(
    ctx: typer.Context,
    input_path: Optional[Path] = typer.Option(None, "--input", "-i", help="Input file (default: stdin)"),
    skip_existing: bool = typer.Option(False, "--skip-existing", help="Leave existing tasks untouched"),
):
    """Import tasks and relationships from JSON lines."""
    graph = get_task_graph(ctx)
    with handle_errors():
        result = import_graph(graph, input_path=input_path, skip_existing=skip_existing)
    print_result(result)


if __name__ == "__main__":
    app()
