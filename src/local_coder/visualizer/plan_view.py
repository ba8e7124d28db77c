"""Rich views for plans, role settings and live role output."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from ..orchestrator.pipeline import RoleUpdate
from ..orchestrator.roles import ROLE_ORDER, Role, RoleSettings
from ..plans.models import FileActionType, Plan

ACTION_STYLES = {
	FileActionType.CREATE: "[green]create[/green]",
	FileActionType.EDIT: "[yellow]edit[/yellow]",
	FileActionType.DELETE: "[red]delete[/red]",
}


def plan_tree(plan: Plan) -> Tree:
	"""Build a Tree with one branch per non-empty plan section."""
	tree = Tree(f"[bold]{plan.summary}[/bold]")

	if plan.steps:
		branch = tree.add("[bold]Plan steps[/bold]")
		for index, step in enumerate(plan.steps, start=1):
			node = branch.add(f"{index}. {step.title}")
			if step.detail:
				node.add(f"[dim]{step.detail}[/dim]")
			if step.result:
				node.add(f"[cyan]Result:[/cyan] {step.result}")

	if plan.command_requests:
		branch = tree.add("[bold]Commands[/bold]")
		for request in plan.command_requests:
			suffix = f" [dim]- {request.description}[/dim]" if request.description else ""
			branch.add(f"[magenta]$ {request.command}[/magenta]{suffix}")

	if plan.file_actions:
		branch = tree.add("[bold]File actions[/bold]")
		for action in plan.file_actions:
			suffix = f" [dim]- {action.description}[/dim]" if action.description else ""
			branch.add(f"{ACTION_STYLES[action.type]} {action.path}{suffix}")

	for title, entries in (
		("Live log", plan.live_log),
		("QA findings", plan.qa_findings),
		("Test results", plan.test_results),
	):
		if entries:
			branch = tree.add(f"[bold]{title}[/bold]")
			for entry in entries:
				branch.add(entry)

	return tree


def render_plan(plan: Plan, console: Optional[Console] = None) -> None:
	"""Print the assistant's message and the plan tree."""
	console = console or Console()
	if plan.message:
		console.print(Panel(plan.message, title="Assistant", border_style="cyan"))
	console.print(plan_tree(plan))


def render_role_settings(settings: dict[Role, RoleSettings], console: Optional[Console] = None) -> None:
	"""Table of resolved model and prompt builder per role."""
	console = console or Console()
	table = Table(title="Roles")
	table.add_column("Role", style="bold")
	table.add_column("Model")
	table.add_column("Source", style="dim")
	table.add_column("Prompt builder")
	table.add_column("Temp", justify="right")
	table.add_column("Top-p", justify="right")
	for role in ROLE_ORDER:
		s = settings[role]
		if s.model_source == role:
			source = "pinned"
		elif s.model_source is None:
			source = "default"
		else:
			source = f"from {s.model_source.value}"
		table.add_row(
			role.label,
			s.model_id,
			source,
			s.prompt_builder_id,
			f"{s.sampling.temperature:g}",
			f"{s.sampling.top_p:g}",
		)
	console.print(table)


class ConsoleStreamSink:
	"""Prints each role's final output as it completes."""

	def __init__(self, console: Optional[Console] = None, max_chars: int = 2000):
		self.console = console or Console()
		self.max_chars = max_chars

	def on_role_update(self, update: RoleUpdate) -> None:
		if not update.final:
			return
		text = update.text.strip()
		if len(text) > self.max_chars:
			text = text[:self.max_chars] + "\n..."
		title = update.role.label
		if update.attempt > 1:
			title += f" (attempt {update.attempt})"
		self.console.print(Panel(text, title=title, border_style="dim"))
