"""
Linear ticket lookup.

Turns a ticket reference such as HEY-123 into its title and description.
Lookup never fails: without credentials, on network errors or when the
ticket does not exist, the reference itself is returned as the title.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

import requests
from rich.console import Console
from rich.markup import escape

console = Console()
logger = logging.getLogger(__name__)

LINEAR_API_URL = "https://api.linear.app/graphql"

ISSUE_QUERY = """
query IssueByNumber($team: String!, $number: Float!) {
  issueSearch(filter: { number: { eq: $number }, team: { key: { eq: $team } } }) {
    nodes { title description identifier url branchName }
  }
}
"""


@dataclass(frozen=True)
class Ticket:
    title: str
    description: str = ""


class LinearError(Exception):
    """Raised by LinearClient when a ticket cannot be fetched."""
    pass


class LinearClient:
    """Minimal GraphQL client for Linear issue lookups."""

    def __init__(self, api_key: str, session: Optional[requests.Session] = None, timeout: float = 10):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, reference: str) -> Ticket:
        """
        Fetch a ticket by reference.

        Args:
            reference: Ticket reference, TEAM-NUMBER

        Returns:
            Ticket with title and description

        Raises:
            LinearError: On transport errors, bad responses or no match
        """
        team, _, number = reference.partition("-")
        try:
            response = self.session.post(
                LINEAR_API_URL,
                json={"query": ISSUE_QUERY, "variables": {"team": team, "number": int(number)}},
                headers={"Content-Type": "application/json", "Authorization": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise LinearError(f"Linear request failed: {e}") from e

        if not isinstance(data, dict):
            raise LinearError("Unexpected Linear response")
        payload = data.get("data") or {}
        search = payload.get("issueSearch") if isinstance(payload, dict) else None
        nodes = search.get("nodes") if isinstance(search, dict) else None
        if not nodes:
            raise LinearError(f"No Linear issue matches {reference}")
        if not isinstance(nodes, list) or not isinstance(nodes[0], dict):
            raise LinearError("Unexpected Linear response")

        node = nodes[0]
        title = node.get("title")
        if title is not None and not isinstance(title, str):
            raise LinearError("Unexpected Linear response")
        description = node.get("description")
        if not isinstance(description, str):
            description = ""
        return Ticket(title=title or reference, description=description)


def fetch_ticket(reference: str,
                 api_key: Optional[str] = None,
                 client: Optional[LinearClient] = None) -> Ticket:
    """
    Look up a ticket, degrading to Ticket(reference) on any failure.

    Args:
        reference: Ticket reference, TEAM-NUMBER
        api_key: Linear API key (defaults to LINEAR_API_KEY)
        client: Preconfigured client, mainly for tests
    """
    fallback = Ticket(title=reference, description="")

    if client is None:
        api_key = api_key or os.environ.get("LINEAR_API_KEY")
        if not api_key:
            console.print("[yellow]⚠[/yellow] Could not fetch ticket details (set LINEAR_API_KEY for auto-fetch)")
            return fallback
        client = LinearClient(api_key)

    console.print(f"[blue]▸[/blue] Fetching Linear ticket: {reference}")
    try:
        ticket = client.fetch(reference)
    except LinearError as e:
        logger.info(str(e))
        console.print("[yellow]⚠[/yellow] Could not fetch ticket details")
        return fallback

    console.print(f"[green]✓[/green] Ticket: {escape(ticket.title)}")
    return ticket
