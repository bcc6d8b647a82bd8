"""
Installs the dispatch usage snippet into the user's global CLAUDE.md so
agents running anywhere know how to hand work off.
"""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console

from ..utils.system_utils import SystemUtils

console = Console()
logger = logging.getLogger(__name__)

SNIPPET_MARKERS = ("dispatch run", "Dispatch (multi-agent")

CLAUDE_MD_SNIPPET = """
## Dispatch (multi-agent orchestration)

Launch Claude Code agents in isolated git worktrees. Each agent gets its own branch, so it can make changes without affecting your working tree or other agents. Agents run inside tmux: interactive mode to watch and guide, headless for fire-and-forget.

**When to use:** Hand off well-defined tasks (Linear tickets, bug fixes, features) to a parallel agent while you keep working. Avoid dispatching two agents to the same files; they will create merge conflicts.

```bash
# Launch agents
dispatch run HEY-123                                  # From Linear ticket (auto-fetches title + description)
dispatch run "Fix the auth bug" --name HEY-879        # Free text with custom branch name (hey-879)
dispatch run HEY-123 --headless                       # Background, check with: dispatch logs HEY-123
dispatch run HEY-123 -m sonnet --max-turns 20         # Sonnet, 20 turn limit
dispatch run HEY-123 HEY-124 HEY-125                  # Batch launch

# Monitor and interact
dispatch list                                         # Status: green=running, yellow=idle, red=exited
dispatch attach HEY-123                               # Jump to agent's terminal (auto-opens tab if no TTY)
dispatch logs HEY-123                                 # Tail headless agent output

# Lifecycle
dispatch stop HEY-123                                 # Interrupt agent (worktree preserved)
dispatch resume HEY-123                               # Pick up where it left off (--continue)
dispatch cleanup HEY-123 --delete-branch              # Remove worktree + branch
dispatch cleanup --all --delete-branch                # Clean up everything
```

**Key flags:** `--name/-n` sets branch name, `--model/-m` picks model, `--headless/-H` for background, `--prompt-file/-f` for long prompts, `--base/-b` to branch off something other than dev.

Config: `~/.dispatch.yml` (base_branch, model, max_turns, max_budget, worktree_dir, claude_timeout).
Requires: tmux, claude CLI, git.
"""


def install_claude_md_snippet(home: Optional[Path] = None) -> bool:
    """
    Add the dispatch section to ~/.claude/CLAUDE.md.

    Args:
        home: Home directory (defaults to the current user's)

    Returns:
        bool: False if the section was already present
    """
    home = Path(home) if home else SystemUtils.home_dir()
    claude_md = home / ".claude" / "CLAUDE.md"

    if claude_md.exists():
        content = claude_md.read_text(encoding="utf-8")
        if any(marker in content for marker in SNIPPET_MARKERS):
            console.print("[yellow]⚠[/yellow] Dispatch section already exists in ~/.claude/CLAUDE.md")
            console.print("[blue]▸[/blue] To update it, remove the existing Dispatch section and run setup again.")
            return False
        with open(claude_md, "a", encoding="utf-8") as f:
            f.write("\n" + CLAUDE_MD_SNIPPET)
        console.print("[green]✓[/green] Added dispatch section to ~/.claude/CLAUDE.md")
        return True

    claude_md.parent.mkdir(parents=True, exist_ok=True)
    claude_md.write_text(CLAUDE_MD_SNIPPET.lstrip(), encoding="utf-8")
    console.print("[green]✓[/green] Created ~/.claude/CLAUDE.md with dispatch section")
    return True
