"""Result reporting: COMPARISON_RESULTS.yaml and the delimited stdout block.

The build server harness scrapes the block between the literal delimiters,
so field names and their order are fixed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml
from rich.table import Table

from buildverify import config
from buildverify.core.models import RunOutcome, Status
from buildverify.verification.hasher import NOT_AVAILABLE

MAX_DIFF_LINES = 20


def results_document(outcome: RunOutcome, now: Optional[datetime] = None) -> dict[str, Any]:
    stamp = (now or datetime.now(timezone.utc)).astimezone()
    return {
        "date": stamp.isoformat(timespec="seconds"),
        "script_version": config.SCRIPT_VERSION,
        "build_type": outcome.request.build_type,
        "results": [r.to_dict() for r in outcome.results],
    }


def write_results_yaml(outcome: RunOutcome, path: Path, now: Optional[datetime] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(
            results_document(outcome, now),
            fh,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
    return path


def _official_hash(outcome: RunOutcome) -> str:
    for result in outcome.results:
        if result.official_hash:
            return result.official_hash
    return f"{NOT_AVAILABLE} (no official release)"


def render_results_block(outcome: RunOutcome, app_id: str) -> list[str]:
    """Lines of the standardized results block, delimiters included."""
    request = outcome.request
    checkout = outcome.checkout
    lines = [
        config.RESULTS_BEGIN,
        f"appId:          {app_id}",
        "signer:         N/A",
        f"apkVersionName: {request.bare_version}",
        "apkVersionCode: N/A",
        f"verdict:        {outcome.verdict_label}",
        f"appHash:        {_official_hash(outcome)}",
        f"commit:         {checkout.commit if checkout else request.version}",
        "",
        "Diff:",
    ]
    if outcome.status is Status.REPRODUCIBLE:
        lines.append("BUILDS MATCH BINARIES")
    else:
        lines.append("BUILDS DO NOT MATCH BINARIES")

    for result in outcome.results:
        flag = "1 (MATCHES)" if result.match else "0 (DOESN'T MATCH)"
        lines.append(f"{result.filename} - {request.triplet} - {result.hash} - {flag}")

    detail: list[str] = []
    for comparison in outcome.comparisons.values():
        detail.extend(comparison.notes)
        detail.extend(comparison.diff_lines)
    if outcome.error:
        detail.append(f"Error: {outcome.error}")
    if len(detail) > MAX_DIFF_LINES:
        detail = detail[:MAX_DIFF_LINES] + ["..."]
    lines.extend(detail)

    lines += ["", "Revision, tag (and its signature):"]
    if checkout is None:
        lines += [f"Git tag: {request.version}", "[WARNING] Source not checked out; signature not verified"]
    else:
        lines.append(f"Git tag: {checkout.ref}")
        if checkout.signature_verified:
            lines.append("Tag signature: good (git verify-tag)")
        else:
            lines.append("[WARNING] Tag signature could not be verified")
    lines += ["", config.RESULTS_END]
    return lines


_STATUS_STYLE = {
    Status.REPRODUCIBLE: "bold green",
    Status.NOT_REPRODUCIBLE: "bold red",
    Status.FTBFS: "bold red",
    Status.NOSOURCE: "bold yellow",
}


def summary_table(outcome: RunOutcome) -> Table:
    table = Table(show_header=True, header_style="bold cyan", title="Verification summary")
    table.add_column("Artifact")
    table.add_column("Built SHA-256", overflow="fold")
    table.add_column("Official SHA-256", overflow="fold")
    table.add_column("Status", justify="center")
    for result in outcome.results:
        style = _STATUS_STYLE.get(result.status, "")
        table.add_row(
            result.filename,
            result.hash,
            result.official_hash or NOT_AVAILABLE,
            f"[{style}]{result.status.value}[/]" if style else result.status.value,
        )
    return table
