"""CLI for local-coder: ask, chat, models, roles, prompts, history and doctor commands."""

import argparse
import asyncio
import signal
import sys
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from pathlib import Path
from typing import AsyncIterator, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from .approval import Approver, AutoApprover, ConsoleApprover
from .cancellation import CancellationToken
from .config import APPROVAL_MODES, Config, apply_stored_settings, load_config
from .controller import AssistantController, TurnOutcome, TurnStatus
from .errors import InferenceError
from .executor import ActionStatus
from .inference import ModelHandlePool, OllamaClient, model_name, normalize_model_id
from .logging_config import setup_logging
from .orchestrator.roles import ROLE_ORDER, Role
from .prompts import list_builders
from .session_store import SessionStore
from .visualizer import ConsoleStreamSink, render_plan, render_role_settings
from .workspace import Workspace

console = Console()

INHERIT = "inherit"


async def _load_state() -> tuple[Config, SessionStore]:
	config = load_config()
	store = SessionStore(config.session_db_path)
	await store.init()
	apply_stored_settings(config, await store.load_settings())
	return config, store


def _make_client(config: Config) -> OllamaClient:
	return OllamaClient(
		config.ollama_host,
		request_timeout=config.request_timeout,
		generation_timeout=config.generation_timeout,
	)


def _workspace_from(args: argparse.Namespace, config: Config) -> Workspace:
	roots = [Path(p).expanduser() for p in (getattr(args, "workspace", None) or [])]
	roots = roots or list(config.workspace_roots) or [Path.cwd()]
	for root in roots:
		if not root.is_dir():
			raise SystemExit(f"Workspace root does not exist: {root}")
	return Workspace(roots, active_root=roots[0])


@asynccontextmanager
async def _cancel_on_interrupt(token: CancellationToken) -> AsyncIterator[None]:
	"""Turn Ctrl-C into a cancellation of the running turn."""
	loop = asyncio.get_running_loop()
	installed = False
	try:
		loop.add_signal_handler(signal.SIGINT, token.cancel, "Interrupted by user")
		installed = True
	except (NotImplementedError, RuntimeError):
		pass
	try:
		yield
	finally:
		if installed:
			loop.remove_signal_handler(signal.SIGINT)


def _report_outcome(outcome: TurnOutcome) -> None:
	if outcome.status == TurnStatus.CANCELLED:
		console.print("[yellow]Assistant request cancelled.[/yellow]")
		return
	if outcome.status == TurnStatus.FAILED:
		console.print(f"[red]Assistant error:[/red] {outcome.error}")
		return
	if outcome.attempts > 1:
		console.print(f"[dim]Plan recovered after {outcome.attempts} attempts[/dim]")
	for result in outcome.command_results:
		if result is not None and result.stdout.strip():
			console.print(f"[magenta]$ {result.command}[/magenta]")
			console.print(result.stdout.rstrip(), markup=False, highlight=False)
	counts = {status: 0 for status in ActionStatus}
	for file_outcome in outcome.file_outcomes:
		counts[file_outcome.status] += 1
	if outcome.file_outcomes:
		console.print(
			f"File actions: {counts[ActionStatus.APPLIED]} applied, "
			f"{counts[ActionStatus.REJECTED]} rejected, {counts[ActionStatus.FAILED]} failed"
		)


async def _run_turns(args: argparse.Namespace, prompts: Optional[list[str]]) -> None:
	config, store = await _load_state()
	setup_logging(level=args.log_level, log_dir=config.log_dir, console=args.verbose)
	if args.auto_approve:
		config.set_approval_mode("autoApprove")
	if args.stream:
		config.show_live_stream = True
	if args.no_commands:
		config.allow_command_execution = False

	workspace = _workspace_from(args, config)
	approver: Approver = AutoApprover() if not config.require_approval else ConsoleApprover(console)
	pool = ModelHandlePool(_make_client(config))
	controller = AssistantController(
		config,
		store,
		pool,
		approver,
		workspace,
		stream_sink=ConsoleStreamSink(console),
		on_status=lambda message: console.print(f"[dim]{message}[/dim]"),
		on_plan=lambda plan: render_plan(plan, console),
	)
	try:
		await controller.load()
		if prompts is not None:
			for prompt in prompts:
				await _one_turn(controller, prompt)
			return
		console.print("[bold]local-coder[/bold] chat. Type /reset to clear history, /exit to quit.")
		while True:
			prompt = await asyncio.to_thread(Prompt.ask, "[bold cyan]you[/bold cyan]", console=console)
			command = prompt.strip().lower()
			if command in ("/exit", "/quit"):
				break
			if command == "/reset":
				await controller.reset_conversation()
				console.print("[dim]Conversation cleared.[/dim]")
				continue
			if command == "/plan":
				if controller.last_plan:
					render_plan(controller.last_plan, console)
				continue
			await _one_turn(controller, prompt)
	finally:
		await pool.aclose()
		await store.close()


async def _one_turn(controller: AssistantController, prompt: str) -> None:
	if not prompt.strip():
		return
	token = CancellationToken()
	async with _cancel_on_interrupt(token):
		outcome = await controller.run_turn(prompt, token)
	_report_outcome(outcome)


def cmd_ask(args: argparse.Namespace) -> None:
	"""Run a single turn for the given request."""
	asyncio.run(_run_turns(args, [" ".join(args.prompt)]))


def cmd_chat(args: argparse.Namespace) -> None:
	"""Interactive loop of turns sharing one conversation."""
	try:
		asyncio.run(_run_turns(args, None))
	except (EOFError, KeyboardInterrupt):
		print()


async def _models(args: argparse.Namespace) -> None:
	config, store = await _load_state()
	try:
		action = args.models_action or "list"
		if action == "list":
			known = await store.known_models()
			in_use = {s.model_id for s in config.resolve_role_settings().values()}
			table = Table(title="Known models")
			table.add_column("Model")
			table.add_column("In use", justify="center")
			for model_id in sorted(set(known) | in_use):
				table.add_row(model_id, "yes" if model_id in in_use else "")
			console.print(table)
		elif action == "add":
			await store.add_known_model(args.model)
			print(f"Added {normalize_model_id(args.model)}")
		elif action == "remove":
			if await store.remove_known_model(args.model):
				print(f"Removed {normalize_model_id(args.model)}")
			else:
				print(f"Not a known model: {args.model}")
		elif action == "pull":
			client = _make_client(config)
			try:
				await client.pull(model_name(normalize_model_id(args.model)), on_progress=print)
				await store.add_known_model(args.model)
			except InferenceError as e:
				print(f"Pull failed: {e}")
				sys.exit(1)
			finally:
				await client.aclose()
	finally:
		await store.close()


def cmd_models(args: argparse.Namespace) -> None:
	"""List, add, remove or pull models."""
	asyncio.run(_models(args))


def _parse_role(value: str) -> Role:
	try:
		return Role.parse(value)
	except ValueError:
		raise SystemExit(f"Unknown role '{value}'. Roles: {', '.join(r.value for r in ROLE_ORDER)}")


async def _set_role(args: argparse.Namespace, kind: str) -> None:
	role = _parse_role(args.role)
	value = None if args.value.strip().lower() == INHERIT else args.value
	config, store = await _load_state()
	try:
		if kind == "model":
			await store.set_role_model(role, value)
			config.set_role_model(role, value)
		else:
			await store.set_role_prompt_builder(role, value)
			config.set_role_prompt_builder(role, value)
		render_role_settings(config.resolve_role_settings(), console)
	finally:
		await store.close()


def cmd_set_model(args: argparse.Namespace) -> None:
	"""Pin a role's model, or make it inherit again."""
	asyncio.run(_set_role(args, "model"))


def cmd_set_prompt(args: argparse.Namespace) -> None:
	"""Pin a role's prompt builder, or make it inherit again."""
	asyncio.run(_set_role(args, "prompt"))


async def _show_roles() -> None:
	config, store = await _load_state()
	await store.close()
	render_role_settings(config.resolve_role_settings(), console)


def cmd_roles(args: argparse.Namespace) -> None:
	"""Show resolved settings for every role."""
	asyncio.run(_show_roles())


def cmd_prompts(args: argparse.Namespace) -> None:
	"""List registered prompt builders."""
	role = _parse_role(args.role) if args.role else None
	table = Table(title="Prompt builders")
	table.add_column("Id")
	table.add_column("Label")
	table.add_column("Description", style="dim")
	for builder in list_builders(role):
		table.add_row(builder.id, builder.label, builder.description)
	console.print(table)


async def _history(args: argparse.Namespace) -> None:
	config, store = await _load_state()
	try:
		if args.reset:
			await store.clear_history()
			print("Conversation history cleared.")
			return
		messages = await store.load_history(config.history_limit)
		if not messages:
			print("(no prior messages)")
		for message in messages:
			console.print(f"[bold]{message.role.value.upper()}[/bold]")
			console.print(message.content, markup=False, highlight=False)
			console.print()
	finally:
		await store.close()


def cmd_history(args: argparse.Namespace) -> None:
	"""Show or reset the stored conversation."""
	asyncio.run(_history(args))


async def _approval(args: argparse.Namespace) -> None:
	config, store = await _load_state()
	try:
		if args.mode:
			config.set_approval_mode(args.mode)
			await store.set_approval_mode(args.mode)
		print(f"Approval mode: {config.approval_mode}")
	finally:
		await store.close()


def cmd_approval(args: argparse.Namespace) -> None:
	"""Show or change the approval mode."""
	asyncio.run(_approval(args))


async def _doctor() -> list[str]:
	config, store = await _load_state()
	await store.close()
	issues: list[str] = []

	print(f"  Config dir:   {config.config_dir}")
	print(f"  Data dir:     {config.data_dir}")
	print(f"  Ollama host:  {config.ollama_host}")
	print(f"  Approval:     {config.approval_mode}")
	print()

	print("  Core deps:")
	for dep in ["httpx", "pydantic", "json5", "aiosqlite", "platformdirs", "python-dotenv", "rich"]:
		try:
			print(f"    {dep:22s} {pkg_version(dep)}")
		except PackageNotFoundError:
			print(f"    {dep:22s} NOT INSTALLED")
			issues.append(f"{dep} package not installed")
	print()

	client = _make_client(config)
	try:
		available = await client.list_models()
		print(f"  Ollama:       reachable ({len(available)} model(s) installed)")
	except InferenceError as e:
		print(f"  Ollama:       UNREACHABLE ({e})")
		issues.append("Ollama daemon not reachable")
		available = []
	finally:
		await client.aclose()

	for role, settings in config.resolve_role_settings().items():
		name = model_name(settings.model_id)
		if available and name not in available and f"{name}:latest" not in available:
			print(f"  {role.label:14s} {name} (will be pulled on first use)")
	print()
	return issues


def cmd_doctor(args: argparse.Namespace) -> None:
	"""Health check - verify installation and the Ollama connection."""
	print("local-coder doctor")
	print(f"{'=' * 40}")
	issues = asyncio.run(_doctor())
	if issues:
		print(f"Issues found ({len(issues)}):")
		for issue in issues:
			print(f"  - {issue}")
		sys.exit(1)
	print("All checks passed.")


def _add_turn_arguments(parser: argparse.ArgumentParser) -> None:
	parser.add_argument(
		"-w", "--workspace", action="append", default=None,
		help="Workspace root (repeatable; the first one is active). Default: current directory",
	)
	parser.add_argument("--auto-approve", action="store_true", help="Apply actions without asking")
	parser.add_argument("--stream", action="store_true", help="Show each role's output as it completes")
	parser.add_argument("--no-commands", action="store_true", help="Skip shell commands proposed by the plan")
	parser.add_argument("--log-level", default=None, help="Console log level (default: LOG_LEVEL or INFO)")
	parser.add_argument("-v", "--verbose", action="store_true", help="Also print log records to the console")


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="local-coder",
		description="Local coding assistant: a chain of Ollama models plans changes you approve",
	)
	subparsers = parser.add_subparsers(dest="command")

	# ask
	ask_parser = subparsers.add_parser("ask", help="Run one request")
	ask_parser.add_argument("prompt", nargs="+", help="What you want done")
	_add_turn_arguments(ask_parser)
	ask_parser.set_defaults(func=cmd_ask)

	# chat
	chat_parser = subparsers.add_parser("chat", help="Interactive session")
	_add_turn_arguments(chat_parser)
	chat_parser.set_defaults(func=cmd_chat)

	# models
	models_parser = subparsers.add_parser("models", help="Manage known models")
	models_sub = models_parser.add_subparsers(dest="models_action")
	models_sub.add_parser("list", help="List known models")
	for action, help_text in (("add", "Remember a model id"), ("remove", "Forget a model id"), ("pull", "Download a model")):
		action_parser = models_sub.add_parser(action, help=help_text)
		action_parser.add_argument("model", help="Model id, e.g. ollama:qwen3:4b")
	models_parser.set_defaults(func=cmd_models)

	# set-model / set-prompt
	set_model = subparsers.add_parser("set-model", help="Pin a role's model")
	set_model.add_argument("role", help="Role name, e.g. reviewer")
	set_model.add_argument("value", help=f"Model id, or '{INHERIT}'")
	set_model.set_defaults(func=cmd_set_model)

	set_prompt = subparsers.add_parser("set-prompt", help="Pin a role's prompt builder")
	set_prompt.add_argument("role", help="Role name, e.g. coder")
	set_prompt.add_argument("value", help=f"Builder id or style name, or '{INHERIT}'")
	set_prompt.set_defaults(func=cmd_set_prompt)

	# roles / prompts
	roles_parser = subparsers.add_parser("roles", help="Show resolved role settings")
	roles_parser.set_defaults(func=cmd_roles)

	prompts_parser = subparsers.add_parser("prompts", help="List prompt builders")
	prompts_parser.add_argument("--role", default=None, help="Only builders for this role")
	prompts_parser.set_defaults(func=cmd_prompts)

	# history
	history_parser = subparsers.add_parser("history", help="Show the stored conversation")
	history_parser.add_argument("--reset", action="store_true", help="Clear the conversation")
	history_parser.set_defaults(func=cmd_history)

	# approval
	approval_parser = subparsers.add_parser("approval", help="Show or set the approval mode")
	approval_parser.add_argument("mode", nargs="?", choices=APPROVAL_MODES, default=None)
	approval_parser.set_defaults(func=cmd_approval)

	# doctor
	doctor_parser = subparsers.add_parser("doctor", help="Health check")
	doctor_parser.set_defaults(func=cmd_doctor)

	return parser


def main() -> None:
	"""CLI entry point."""
	load_dotenv()
	parser = build_parser()
	args = parser.parse_args()

	if not args.command:
		parser.print_help()
		sys.exit(1)

	args.func(args)


if __name__ == "__main__":
	main()
