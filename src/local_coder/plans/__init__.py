"""Plan schema and recovery of plans from model output."""

from .models import CommandRequest, FileAction, FileActionType, Plan, Step
from .recovery import ResponseRecoverer, recover_plan

__all__ = [
	"CommandRequest",
	"FileAction",
	"FileActionType",
	"Plan",
	"ResponseRecoverer",
	"Step",
	"recover_plan",
]
