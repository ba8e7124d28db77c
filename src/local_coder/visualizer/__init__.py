"""Rich terminal views."""

from .plan_view import ConsoleStreamSink, plan_tree, render_plan, render_role_settings

__all__ = ["ConsoleStreamSink", "plan_tree", "render_plan", "render_role_settings"]
