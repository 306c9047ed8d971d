#!/usr/bin/env python3
"""
Audit trail for action runs.

Output:
    <output_dir>/<run_id>.results.json
    <output_dir>/<run_id>.results.md
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from crm_admin.actions.runner import ActionResult

PREVIEW_RECORDS = 10


def make_run_id(action_name: str, when: Optional[datetime] = None) -> str:
    when = when or datetime.now(timezone.utc)
    return f"{action_name.replace('.', '_')}-{when.strftime('%Y%m%dT%H%M%SZ')}"


class ResultsWriter:
    """Writes action results to files."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def write_results(self, result: ActionResult, run_info: Optional[dict] = None):
        """Write results to JSON and markdown files."""
        run_info = dict(run_info or {})
        run_id = run_info.get("run_id") or make_run_id(result.action)
        run_info["run_id"] = run_id

        self.output_dir.mkdir(parents=True, exist_ok=True)

        json_path = self.output_dir / f"{run_id}.results.json"
        with open(json_path, "w") as f:
            json.dump({"run": run_info, "result": result.to_dict()}, f, indent=2, default=str)

        md_path = self.output_dir / f"{run_id}.results.md"
        with open(md_path, "w") as f:
            f.write(self._generate_markdown(result, run_info))

        return json_path, md_path

    def _generate_markdown(self, result: ActionResult, run_info: dict) -> str:
        """Generate markdown summary of results."""
        lines = []
        lines.append(f"# Action Results: {run_info['run_id']}")
        lines.append("")
        lines.append(f"**Generated:** {datetime.now(timezone.utc).isoformat()}")
        lines.append("")

        lines.append("## Summary")
        lines.append("")
        lines.append("| Field | Value |")
        lines.append("|-------|-------|")
        lines.append(f"| Action | `{result.action}` |")
        lines.append(f"| Mode | `{'DRY_RUN' if result.dry_run else 'LIVE'}` |")
        if run_info.get("tenant"):
            lines.append(f"| Tenant | `{run_info['tenant']}` |")
        if run_info.get("endpoint"):
            lines.append(f"| Endpoint | `{run_info['endpoint']}` |")
        lines.append(f"| Success | `{result.success}` |")
        lines.append(f"| Affected | `{result.affected}` |")
        lines.append(f"| Verified | `{result.verified}` |")
        lines.append(f"| Started | `{result.started_utc}` |")
        lines.append(f"| Finished | `{result.finished_utc}` |")
        lines.append("")

        if run_info.get("params"):
            lines.append("## Parameters")
            lines.append("")
            for key, value in run_info["params"].items():
                lines.append(f"- **{key}:** `{value}`")
            lines.append("")

        if result.error:
            lines.append("## Error")
            lines.append("")
            for key in ("kind", "status", "code", "message", "details", "hint"):
                if result.error.get(key) is not None:
                    lines.append(f"- **{key}:** {result.error[key]}")
            lines.append("")

        if result.notes:
            lines.append("## Log")
            lines.append("")
            lines.append("```")
            lines.extend(result.notes)
            lines.append("```")
            lines.append("")

        if result.records:
            lines.append(f"## Records (first {PREVIEW_RECORDS})")
            lines.append("")
            lines.append("```json")
            lines.append(json.dumps(result.records[:PREVIEW_RECORDS], indent=2, default=str))
            lines.append("```")
            lines.append("")

        return "\n".join(lines)
