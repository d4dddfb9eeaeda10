from .policy import DeskPolicy, DeskPolicyEngine, format_policy_for_prompt
from .tilt import (
    DefenseMode,
    RiskState,
    TiltService,
    TiltSignal,
    TiltState,
    apply_defense_mode,
)

__all__ = [
    "DefenseMode",
    "DeskPolicy",
    "DeskPolicyEngine",
    "RiskState",
    "TiltService",
    "TiltSignal",
    "TiltState",
    "apply_defense_mode",
    "format_policy_for_prompt",
]
