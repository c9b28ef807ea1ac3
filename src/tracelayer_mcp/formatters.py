"""Formatting functions for TraceLayer console output.

Everything here works on the JSON dicts returned by the API and renders
plain text: the pipeline stage indicator, the terminal-style log view, the
run history panel, conflict lists and the shared BRD view.
"""
from datetime import datetime
from typing import Any, Optional

from tracelayer_core.conflict_policy import brd_accuracy, is_settled, sort_conflicts
from tracelayer_core.models import RunStatus
from tracelayer_core.pipeline_state_machine import PIPELINE_STAGES, is_terminal, stage_index

STAGE_LABELS = {
    RunStatus.INGESTING: "Ingestion",
    RunStatus.CLASSIFYING: "Classification",
    RunStatus.EXTRACTING_REQUIREMENTS: "Requirements",
    RunStatus.EXTRACTING_STAKEHOLDERS: "Stakeholders",
    RunStatus.EXTRACTING_DECISIONS: "Decisions",
    RunStatus.EXTRACTING_TIMELINE: "Timeline",
    RunStatus.DETECTING_CONFLICTS: "Conflicts",
    RunStatus.BUILDING_TRACEABILITY: "Traceability",
    RunStatus.GENERATING_DOCUMENTS: "Documents",
}

STAGE_MARKERS = {"done": "[x]", "current": "[>]", "pending": "[ ]"}

HISTORY_COLORS = {
    RunStatus.COMPLETED: "emerald",
    RunStatus.FAILED: "red",
    RunStatus.CANCELLED: "amber",
}
ACTIVE_COLOR = "blue"

LEVEL_TAGS = {
    "info": "INFO",
    "processing": "....",
    "success": " OK ",
    "warning": "WARN",
    "error": "FAIL",
}


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def format_duration(seconds: float) -> str:
    seconds = int(round(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes}m {seconds}s"


# ============================================================================
# Pipeline stage indicator
# ============================================================================


def stage_indicator(status: Optional[str]) -> list[dict]:
    """
    State of each pipeline stage for a run status.

    A stage is done when the run is past it or the run completed, current when
    the run is in it and not terminal, pending otherwise.
    """
    run_status = RunStatus(status) if status else RunStatus.QUEUED
    current_index = stage_index(run_status)
    completed = run_status == RunStatus.COMPLETED

    stages = []
    for index, stage in enumerate(PIPELINE_STAGES):
        if current_index > index or completed:
            state = "done"
        elif current_index == index and not is_terminal(run_status):
            state = "current"
        else:
            state = "pending"
        stages.append({"stage": stage.value, "label": STAGE_LABELS[stage], "state": state})
    return stages


def format_stage_indicator(status: Optional[str]) -> str:
    return "\n".join(
        f"{STAGE_MARKERS[s['state']]} {s['label']}" for s in stage_indicator(status)
    )


# ============================================================================
# Runs and logs
# ============================================================================


def run_history_entry(run: dict) -> dict:
    """Display fields of one run in the history panel."""
    status = RunStatus(run["status"])
    entry = {
        "id": run["id"],
        "status": status.value,
        "color": HISTORY_COLORS.get(status, ACTIVE_COLOR),
        "started_at": run.get("started_at"),
        "reqs": None,
        "duration": None,
    }
    if status == RunStatus.COMPLETED:
        entry["reqs"] = run.get("requirements_found", 0)

    started = _parse_time(run.get("started_at"))
    finished = _parse_time(run.get("completed_at"))
    if started and finished:
        entry["duration"] = format_duration((finished - started).total_seconds())
    return entry


def format_run_history(runs: list[dict]) -> str:
    if not runs:
        return "No pipeline runs yet."
    lines = [f"Run history ({len(runs)}):"]
    for entry in (run_history_entry(r) for r in runs):
        line = f"- ({entry['color']}) {entry['status']} {entry['started_at']}"
        if entry["reqs"] is not None:
            line += f" | {entry['reqs']} reqs"
        if entry["duration"]:
            line += f" | {entry['duration']}"
        lines.append(line)
    return "\n".join(lines)


def format_log_entry(entry: dict) -> str:
    timestamp = _parse_time(entry.get("timestamp"))
    clock = timestamp.strftime("%H:%M:%S") if timestamp else "--:--:--"
    tag = LEVEL_TAGS.get(entry.get("level"), entry.get("level", "").upper())
    return f"{clock} [{tag}] {entry.get('agent')}: {entry.get('message')}"


def format_terminal(logs: list[dict]) -> str:
    """Terminal-style log view, in the order given."""
    if not logs:
        return "$ waiting for pipeline output..."
    return "\n".join(format_log_entry(e) for e in logs)


def format_run(run: Optional[dict]) -> str:
    if not run:
        return "No pipeline runs yet."
    lines = [
        f"Run {run['id']}",
        f"Status: {run['status']}",
        f"Started: {run['started_at']}",
    ]
    if run.get("completed_at"):
        lines.append(f"Completed: {run['completed_at']}")
    if run["status"] == RunStatus.COMPLETED.value:
        lines.append(
            f"Found: {run['requirements_found']} requirements, {run['stakeholders_found']} stakeholders, "
            f"{run['decisions_found']} decisions, {run['conflicts_found']} conflicts "
            f"from {run['sources_processed']} sources"
        )
    if run.get("error"):
        lines.append(f"Error: {run['error']}")
    return "\n".join(lines)


def format_pipeline_status(run: Optional[dict], logs: list[dict]) -> str:
    if not run:
        return "No pipeline runs yet."
    return f"{format_run(run)}\n\n{format_stage_indicator(run['status'])}\n\n{format_terminal(logs)}"


# ============================================================================
# Diagnostics
# ============================================================================


def format_diagnostics(d: dict) -> str:
    sources = d["sources"]
    extraction = d["extraction"]
    quality = d["quality"]
    runs = d["runs"]
    errors = d["errors"]

    lines = [
        f"**{d['project']['name']}** ({d['project']['status']}, {d['project']['progress']}%)",
        "",
        f"Sources: {sources['total']} total, {sources['extracted']} extracted, "
        f"{sources['failed']} failed, {sources['total_words']} words",
        f"Extracted: {extraction['requirements']} requirements, {extraction['stakeholders']} stakeholders, "
        f"{extraction['decisions']} decisions, {extraction['timeline_events']} timeline events, "
        f"{extraction['conflicts']} conflicts, {extraction['documents']} documents",
        f"Quality: avg confidence {quality['avg_confidence']}, {quality['high_confidence']} high, "
        f"{quality['low_confidence']} low, histogram {quality['histogram']}",
        f"Runs: {runs['total']} total, {runs['completed']} completed, {runs['failed']} failed, "
        f"{runs['cancelled']} cancelled, success rate {runs['success_rate']}%, "
        f"avg duration {runs['avg_duration_sec']}s",
        f"Errors: {errors['count']} errors, {errors['warnings']} warnings in the latest run",
    ]
    for sample in errors["recent_errors"]:
        lines.append(f"  - {sample['agent']}: {sample['message']}")
    return "\n".join(lines)


def format_preflight(p: dict) -> str:
    lines = [f"Preflight: {p['passed']} passed, {p['failed']} failed"]
    for check in p["checks"]:
        mark = "PASS" if check["status"] == "pass" else "FAIL"
        lines.append(f"[{mark}] {check['label']}: {check['message']}")
    return "\n".join(lines)


# ============================================================================
# Conflicts
# ============================================================================


def format_conflict(c: dict) -> str:
    resolution = f"\nResolution: {c['resolution']}" if c.get("resolution") else ""
    return (
        f"**{c['conflict_id']}** [{c['severity']}] {c['title']} ({c['status']})\n"
        f"ID: {c['id']}\n"
        f"{c['description']}\n"
        f"Requirements: {', '.join(c.get('requirement_ids') or [])}{resolution}"
    )


def conflict_summary(conflicts: list[dict]) -> dict:
    settled = sum(1 for c in conflicts if is_settled(c.get("status")))
    return {
        "total": len(conflicts),
        "resolved": settled,
        "accuracy": brd_accuracy(settled, len(conflicts)),
    }


def format_conflict_list(conflicts: list[dict]) -> str:
    """Conflicts unresolved-first then by severity, headed by BRD accuracy."""
    summary = conflict_summary(conflicts)
    header = (
        f"BRD accuracy: {summary['accuracy']}% "
        f"({summary['resolved']} of {summary['total']} conflicts resolved)"
    )
    if not conflicts:
        return f"{header}\n\nNo conflicts detected."
    body = "\n\n".join(format_conflict(c) for c in sort_conflicts(conflicts))
    return f"{header}\n\n{body}"


# ============================================================================
# Projects, sources, shared view
# ============================================================================


def format_project(p: dict) -> str:
    desc_info = f"\nDescription: {p['description']}" if p.get("description") else ""
    return f"""**{p['name']}**
ID: {p['id']}
Status: {p['status']} ({p['progress']}%){desc_info}
Sources: {p['source_count']} | Requirements: {p['requirement_count']} | Stakeholders: {p['stakeholder_count']} | Decisions: {p['decision_count']} | Conflicts: {p['conflict_count']}"""


def format_source(s: dict) -> str:
    words = (s.get("metadata") or {}).get("word_count")
    return f"- {s['name']} ({s['type']}, {words} words) [{s['status']}] ID: {s['id']}"


def format_requirement(r: dict) -> str:
    return (
        f"- {r['requirement_id']} [{r['category']}/{r['priority']}] {r['title']} "
        f"({round(r['confidence_score'] * 100)}%)"
    )


def format_brd_section(section: dict) -> str:
    title = f"## {section['title']}"
    kind = section.get("kind")
    if kind == "text":
        return f"{title}\n{section['body']}"
    if kind == "list":
        items = []
        for item in section.get("items") or []:
            if isinstance(item, dict):
                label = item.get("title") or item.get("id") or ", ".join(f"{k}: {v}" for k, v in item.items())
                items.append(f"- {label}")
            else:
                items.append(f"- {item}")
        return "\n".join([title, *items])
    fields = section.get("fields") or {}
    lines = [title]
    for key, value in fields.items():
        if isinstance(value, list):
            value = "; ".join(str(v) for v in value)
        lines.append(f"- {key}: {value}")
    return "\n".join(lines)


SHARED_ERRORS = {
    "not_found": "Document not found. This shared link does not exist or has been revoked.",
    "expired": "Link expired. Ask the document owner for a new link.",
}


def format_shared_view(snapshot: dict) -> str:
    """Read-only BRD view, or the not-found / expired screen."""
    error = snapshot.get("error")
    if error:
        return SHARED_ERRORS.get(error, f"Unable to open shared document: {error}")

    project = snapshot.get("project") or {}
    lines = [
        f"# {project.get('name', 'Shared document')} (BRD v{snapshot.get('version', 1)})",
        f"Permission: {snapshot.get('permission')}"
        + (" | password protected" if snapshot.get("has_password") else ""),
    ]
    if project.get("description"):
        lines.append(project["description"])
    lines.append(
        f"{len(snapshot.get('requirements') or [])} requirements, "
        f"{len(snapshot.get('stakeholders') or [])} stakeholders, "
        f"{len(snapshot.get('conflicts') or [])} conflicts, "
        f"{len(snapshot.get('sources') or [])} sources"
    )

    content = snapshot.get("brd_content")
    if content and content.get("sections"):
        lines.extend(["", *(format_brd_section(s) + "\n" for s in content["sections"])])
    else:
        lines.extend(["", "No BRD has been generated for this project yet."])
    return "\n".join(lines).rstrip()


def format_share_link(link: dict) -> str:
    status = "active" if link.get("is_active") else "revoked"
    expires = f" | expires {link['expires_at']}" if link.get("expires_at") else ""
    return (
        f"- {link['token']} ({link['permission']}, {status}) "
        f"views: {link.get('access_count', 0)}{expires} ID: {link['id']}"
    )
