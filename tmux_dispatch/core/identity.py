"""
Agent identity resolution.

An agent is addressed by a short ID that doubles as its branch name, its
worktree directory name and its tmux window name.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..tickets.linear import Ticket

logger = logging.getLogger(__name__)

TICKET_RE = re.compile(r"^[A-Z]+-[0-9]+$")
SLUG_MAX_LENGTH = 40

# Input used when the whole prompt comes from a file or an inline prompt
PROMPT_FILE_PLACEHOLDER = "prompt-file"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_HEADING_RE = re.compile(r"^#+\s*")

TicketLookup = Callable[[str], Ticket]


@dataclass(frozen=True)
class AgentIdentity:
    id: str
    branch: str
    prompt: str
    ticket: Optional[str] = None


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Turn any string into a short kebab-case slug for branch and window names."""
    slug = _NON_ALNUM_RE.sub("-", text.lower()).strip("-")
    return slug[:max_length].rstrip("-")


def is_ticket_reference(text: str) -> bool:
    return TICKET_RE.match(text) is not None


def fallback_id(clock: Callable[[], float] = time.time) -> str:
    """Synthesize an ID from the last six digits of the millisecond clock."""
    return f"task-{str(int(clock() * 1000))[-6:]}"


def ticket_prompt(reference: str, ticket: Ticket) -> str:
    if ticket.description:
        return (
            f"Linear ticket {reference}: {ticket.title}\n\n{ticket.description}\n\n"
            "Work on this ticket. Create commits as you go. When done, push the branch."
        )
    return (
        f"Work on ticket {reference}: {ticket.title}. "
        "Create commits as you go. When done, push the branch."
    )


def _first_line_slug(prompt_text: str) -> str:
    for line in prompt_text.split("\n"):
        if line.strip():
            return slugify(_HEADING_RE.sub("", line.strip()))
    return ""


def resolve_identity(user_input: str,
                     name_override: Optional[str] = None,
                     prompt_text: Optional[str] = None,
                     ticket_lookup: Optional[TicketLookup] = None,
                     clock: Callable[[], float] = time.time) -> AgentIdentity:
    """
    Derive the agent ID, branch and initial prompt for one task input.

    Args:
        user_input: Ticket reference (HEY-123) or free-text task
        name_override: Explicit agent name; always wins
        prompt_text: Prompt loaded from a file, replacing the derived one
        ticket_lookup: Callable returning a Ticket for a reference; when
            None, tickets resolve to their reference as title
        clock: Time source for the fallback ID

    Returns:
        AgentIdentity: Never fails; every input yields a usable ID
    """
    ticket_ref = user_input if is_ticket_reference(user_input) else None

    if ticket_ref:
        ticket = ticket_lookup(ticket_ref) if ticket_lookup else Ticket(title=ticket_ref)
        title_slug = slugify(ticket.title) if ticket.title != ticket_ref else ""
        agent_id = f"{ticket_ref.lower()}-{title_slug}" if title_slug else ticket_ref.lower()
        prompt = ticket_prompt(ticket_ref, ticket)
    else:
        agent_id = slugify(user_input) or fallback_id(clock)
        prompt = user_input

    if prompt_text is not None:
        if ticket_ref:
            logger.warning(f"Ticket prompt for {ticket_ref} overridden by prompt file")
        prompt = prompt_text
        if not name_override and not ticket_ref:
            derived = _first_line_slug(prompt_text)
            if derived:
                agent_id = derived

    if name_override:
        agent_id = slugify(name_override) or name_override

    return AgentIdentity(id=agent_id, branch=agent_id, prompt=prompt, ticket=ticket_ref)
