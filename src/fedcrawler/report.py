"""
Report building and serialization.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from fedcrawler.core import Outcome, SeenRegistry, State
from fedcrawler.errors import RegistryError

PAGE_TITLE = "Current known instances"

HTML_SKELETON = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title></title></head>
<body><div style="max-width: 800px; margin: 0 auto;"></div></body>
</html>
"""


def utc_now_iso() -> str:
    """Return current UTC time in ISO format."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def normalize_domain(identifier: str) -> str:
    """
    Reduce an identifier to ``scheme://host[:port]``.

    Scheme and host are lowercased; path, query and fragment are dropped.
    Text without a scheme and host is returned stripped of surrounding
    whitespace and trailing slashes. Applying this twice changes nothing.
    """
    text = identifier.strip()
    try:
        parts = urlsplit(text)
    except ValueError:
        return text.rstrip("/")
    if parts.scheme and parts.netloc:
        return f"{parts.scheme.lower()}://{parts.netloc.lower()}"
    return text.rstrip("/")


@dataclass(slots=True)
class InstanceReport:
    """Alive domains and dead domains with their failure description."""
    alive: List[str] = field(default_factory=list)
    dead: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {"alive": list(self.alive), "dead": dict(self.dead)}

    def to_json(self, pretty: bool = False) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2 if pretty else None)

    def to_html(self, generated_at: Optional[str] = None) -> str:
        """Render the report as a standalone HTML page."""
        soup = BeautifulSoup(HTML_SKELETON, "lxml")
        soup.title.string = PAGE_TITLE
        container = soup.body.div

        heading = soup.new_tag("h1", style="text-align: center;")
        heading.string = PAGE_TITLE
        container.append(heading)

        stamp = soup.new_tag("p", style="text-align: center;")
        stamp.string = f"Generated {generated_at or utc_now_iso()}"
        container.append(stamp)

        alive_heading = soup.new_tag("h2")
        alive_heading.string = f"Alive ({len(self.alive)})"
        container.append(alive_heading)
        alive_list = soup.new_tag("ul", attrs={"class": "alive", "style": "list-style-type: none;"})
        for domain in self.alive:
            item = soup.new_tag("li")
            link = soup.new_tag("a", href=domain)
            link.string = domain
            item.append(link)
            alive_list.append(item)
        container.append(alive_list)

        dead_heading = soup.new_tag("h2")
        dead_heading.string = f"Dead ({len(self.dead)})"
        container.append(dead_heading)
        dead_list = soup.new_tag("ul", attrs={"class": "dead", "style": "list-style-type: none;"})
        for domain, reason in self.dead.items():
            item = soup.new_tag("li")
            name = soup.new_tag("span", attrs={"class": "domain"})
            name.string = domain
            why = soup.new_tag("span", attrs={"class": "reason"})
            why.string = f" ({reason})"
            item.append(name)
            item.append(why)
            dead_list.append(item)
        container.append(dead_list)

        return str(soup)


def build_report(seen: Union[SeenRegistry, Mapping[str, Outcome]]) -> InstanceReport:
    """
    Partition a fully resolved registry into alive and dead domains.

    A domain is alive if any identifier under it is alive. Otherwise it is
    dead with the reason of its lexicographically first dead identifier.
    """
    entries = seen.snapshot() if isinstance(seen, SeenRegistry) else dict(seen)

    alive: set[str] = set()
    dead: Dict[str, str] = {}
    for identifier in sorted(entries):
        outcome = entries[identifier]
        domain = normalize_domain(identifier)
        if outcome.state is State.ALIVE:
            alive.add(domain)
        elif outcome.state is State.DEAD:
            dead.setdefault(domain, outcome.reason or "unknown error")
        else:
            raise RegistryError(f"Unresolved identifier at report time: {identifier}")

    for domain in alive:
        dead.pop(domain, None)

    return InstanceReport(
        alive=sorted(alive),
        dead={domain: dead[domain] for domain in sorted(dead)},
    )


def save_report(
    report: InstanceReport,
    json_path: Path,
    html_path: Path,
    pretty: bool = False,
) -> None:
    """Write both representations. OSError propagates to the caller."""
    for path in (json_path, html_path):
        path.parent.mkdir(parents=True, exist_ok=True)
    json_path.write_text(report.to_json(pretty=pretty), encoding="utf-8")
    html_path.write_text(report.to_html(), encoding="utf-8")
