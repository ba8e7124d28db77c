"""Role sequencing: the role graph and the pipeline that runs it.

Only the role definitions are re-exported here; import the pipeline from
``local_coder.orchestrator.pipeline``.
"""

from .roles import ROLE_ORDER, Role, RoleSettings, SamplingParams

__all__ = ["ROLE_ORDER", "Role", "RoleSettings", "SamplingParams"]
