"""System prompt assembly."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from chatkin.config import ChatMode

GLOBAL_PROMPT = (
    "You are the workspace assistant. You help with projects, tasks, notes, planning and organizing, "
    "and you can see all workspace data.\n"
    "Task titles, project names and note titles are 50 characters max.\n"
    'Use smart defaults for simple requests such as "Buy milk".'
)

CHAT_MODE_PROMPT = """## Role

You are a direct, honest coach who helps the user see patterns and take action. Be conversational,
insightful and concise. When something actionable comes up, propose it as tasks or notes.

## Tools

- propose_operations: create, update or delete tasks, notes and projects (the user approves first)
- ask_questions: ask clarifying questions, only when critical information is missing
- query_tasks / query_notes / query_projects / query_files: read data beyond the snapshot"""

ACTION_MODE_PROMPT = """## Role

You are an efficient operator: understand context quickly, make sensible decisions and get things done
without unnecessary chatter.

## Create requests

- Simple and clear requests: use propose_operations right away with smart defaults.
- Ambiguous requests missing critical details: call ask_questions first, then propose_operations.
- Updates and deletes: find the item IDs in the workspace snapshot or with the query tools."""

QUERY_GUIDANCE = """## When to use query tools

The snapshot above is intentionally limited. Use the query tools when the user asks for all items,
for filtered data, or for content that is not in the snapshot. Do not use them for questions the
snapshot already answers."""


@dataclass(frozen=True)
class ChatScope:
    """Where in the application the user is chatting from."""

    scope: str = "global"
    domain: str | None = None

    def hint(self) -> str:
        if self.scope == "notes":
            return "**Context:** You're on the Notes page. The user is browsing their notes collection."
        if self.scope == "tasks":
            return "**Context:** You're on the Tasks page. The user is browsing their tasks."
        if self.domain:
            return (
                f"**Context:** You're on the {self.domain} domain page. When creating new items, "
                f"default to the {self.domain} domain unless the user specifies otherwise."
            )
        return ""


def build_system_prompt(
    mode: ChatMode,
    *,
    scope: ChatScope | None = None,
    workspace_context: str | None = None,
    today: date | None = None,
) -> str:
    blocks = [GLOBAL_PROMPT]
    if scope is not None and (hint := scope.hint()):
        blocks.append(hint)
    if workspace_context:
        blocks.append(f"## Workspace Context Snapshot\n\n{workspace_context.strip()}")
        blocks.append(QUERY_GUIDANCE)
    blocks.append(CHAT_MODE_PROMPT if mode is ChatMode.CHAT else ACTION_MODE_PROMPT)
    blocks.append(f"Today's date is {(today or date.today()).isoformat()}.")
    return "\n\n".join(blocks)
