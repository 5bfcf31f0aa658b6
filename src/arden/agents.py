# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Agent identifiers known to the Arden platform."""

from enum import Enum
from typing import Optional


class AgentId(str, Enum):
    """Production agent IDs."""
    AMP = "A-AMP"
    CURSOR = "A-CURSOR"
    CLAUDE_CODE = "A-CLAUDECODE"
    COPILOT = "A-COPILOT"
    WINDSURF = "A-WINDSURF"
    CLINE = "A-CLINE"
    AIDER = "A-AIDER"
    CONTINUE = "A-CONTINUE"
    OPENCODE = "A-OPENCODE"


AGENT_NAMES = {
    AgentId.AMP: "Amp",
    AgentId.CURSOR: "Cursor",
    AgentId.CLAUDE_CODE: "Claude Code",
    AgentId.COPILOT: "GitHub Copilot",
    AgentId.WINDSURF: "Windsurf",
    AgentId.CLINE: "Cline",
    AgentId.AIDER: "Aider",
    AgentId.CONTINUE: "Continue",
    AgentId.OPENCODE: "OpenCode",
}


def get_agent_name(agent_id: str) -> Optional[str]:
    """Return the display name for an agent ID, or None if unknown."""
    try:
        return AGENT_NAMES[AgentId(agent_id)]
    except ValueError:
        return None
