"""Stage agents of the extraction pipeline.

Each agent is a plain function taking the shared StageContext. Agents call
the LLM, store what they extracted through crud/models and append progress
lines to the run log. Counters for the run are accumulated on the context and
written by the runner when the run completes.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from .. import crud, models
from ..brd_content import normalize_brd
from ..config import Settings
from ..pipeline_state_machine import STAGE_AGENTS
from .parsing import parse_object
from .providers import LLMProvider

logger = logging.getLogger("tracelayer-core.extraction.agents")

E = TypeVar("E")

CHUNK_OVERLAP = 2000
COMBINED_CONTENT_LIMIT = 60000
DOCUMENT_CONTEXT_LIMIT = 50000
DEFAULT_CONFIDENCE = 0.7
DECISION_TYPES = ("architectural", "functional", "business", "technical", "process")

_NON_WORD = re.compile(r"[^a-z0-9\s]")


class NoSourcesError(RuntimeError):
    """Raised by ingestion when the project has nothing to process."""

    def __init__(self):
        super().__init__("No sources found")


@dataclass
class StageContext:
    """State shared by the agents of a single run."""

    db: Session
    run: models.ExtractionRun
    project: models.Project
    llm: LLMProvider
    settings: Settings
    sources: list[models.Source] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=lambda: {
        "sources_processed": 0,
        "requirements_found": 0,
        "stakeholders_found": 0,
        "decisions_found": 0,
        "conflicts_found": 0,
    })

    def log(
        self,
        agent: models.AgentName,
        level: models.LogLevel,
        message: str,
        detail: Optional[str] = None,
    ) -> None:
        crud.append_log(self.db, self.run, agent, level, message, detail)

    def ask(self, system_prompt: str, prompt: str, max_tokens: Optional[int] = None) -> dict:
        response = self.llm.complete(
            system_prompt,
            prompt,
            json_mode=True,
            max_tokens=max_tokens or self.settings.llm_max_tokens,
        )
        return parse_object(response.content)

    def combined_content(self, limit: int = COMBINED_CONTENT_LIMIT) -> str:
        text = "\n\n---\n\n".join(f"[Source: {s.name} ({s.type.value})]\n{s.content}" for s in self.sources)
        return text[:limit]


# =============================================================================
# Helpers
# =============================================================================


def coerce_enum(enum_cls: type[E], value: Any, default: E) -> E:
    """Map a model-provided string onto an enum member, falling back to default."""
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def coerce_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score <= 0:
        return default
    return min(score, 1.0)


def title_words(title: str) -> set[str]:
    return set(_NON_WORD.sub("", (title or "").lower().strip()).split())


def is_similar_title(a: str, b: str, threshold: float = 0.7) -> bool:
    """True when the word overlap, relative to the smaller title, reaches threshold."""
    words_a = title_words(a)
    words_b = title_words(b)
    if not words_a or not words_b:
        return False
    overlap = len(words_a & words_b)
    return overlap / min(len(words_a), len(words_b)) >= threshold


def chunk_text(content: str, size: int, overlap: int = CHUNK_OVERLAP) -> list[str]:
    """Split content into overlapping chunks of at most size characters."""
    if len(content) <= size:
        return [content]
    overlap = min(overlap, size // 2)
    chunks = []
    start = 0
    while start < len(content):
        end = min(start + size, len(content))
        chunks.append(content[start:end])
        if end == len(content):
            break
        start = end - overlap
    return chunks


def next_sequence(identifiers: list[str], prefix: str) -> int:
    """Highest numeric suffix among identifiers like REQ-007 (0 when none)."""
    highest = 0
    for identifier in identifiers:
        if identifier and identifier.startswith(prefix):
            try:
                highest = max(highest, int(identifier[len(prefix):]))
            except ValueError:
                continue
    return highest


def format_identifier(prefix: str, number: int) -> str:
    return f"{prefix}{number:03d}"


def _add_link(
    db: Session,
    project_id,
    from_type: str,
    from_id,
    to_type: str,
    to_id,
    relationship: str,
    strength: float,
) -> None:
    db.add(models.TraceabilityLink(
        project_id=project_id,
        from_type=from_type,
        from_id=str(from_id),
        to_type=to_type,
        to_id=str(to_id),
        relationship_type=relationship,
        strength=strength,
    ))


def _match_source(sources: list[models.Source], excerpt: str) -> Optional[models.Source]:
    excerpt = (excerpt or "").lower()
    if len(excerpt) > 10:
        for source in sources:
            if excerpt[:100] in source.content.lower():
                return source
    return sources[0] if sources else None


# =============================================================================
# Agents
# =============================================================================


def ingest(ctx: StageContext) -> None:
    """Load the project's sources; fail the run when there are none."""
    agent = STAGE_AGENTS[models.RunStatus.INGESTING]
    ctx.sources = crud.list_sources(ctx.db, ctx.project.id)
    detail = json.dumps([
        {"name": s.name, "type": s.type.value, "words": (s.source_metadata or {}).get("word_count")}
        for s in ctx.sources
    ])
    ctx.log(agent, models.LogLevel.PROCESSING, f"Found {len(ctx.sources)} source(s) to process", detail)
    if not ctx.sources:
        raise NoSourcesError()
    ctx.counts["sources_processed"] = len(ctx.sources)


def classify(ctx: StageContext) -> None:
    """Score each source's relevance to the project."""
    agent = STAGE_AGENTS[models.RunStatus.CLASSIFYING]
    ctx.log(agent, models.LogLevel.PROCESSING, "Classifying source relevance...")

    for source in ctx.sources:
        crud.update_source_status(ctx.db, source, models.SourceStatus.CLASSIFYING)
        prompt = (
            "Analyze this communication and classify its relevance to a business project.\n"
            "Rate relevance from 0.0 to 1.0 where 1.0 is highly relevant to business requirements.\n\n"
            "Return JSON:\n"
            '{"relevance": <number>, "summary": "<one sentence>", "has_requirements": <boolean>, '
            '"has_decisions": <boolean>, "has_stakeholders": <boolean>, "key_topics": ["<topic>"]}\n\n'
            f'Communication source "{source.name}":\n{source.content[:ctx.settings.max_source_chars]}'
        )
        data = ctx.ask("You are a communication classifier for a requirements intelligence system.", prompt)
        relevance = coerce_confidence(data.get("relevance"), default=0.5)
        crud.update_source_status(ctx.db, source, models.SourceStatus.CLASSIFIED, relevance_score=relevance)
        topics = ", ".join(str(t) for t in data.get("key_topics") or [])
        ctx.log(
            agent,
            models.LogLevel.SUCCESS,
            f'Classified "{source.name}": relevance {relevance * 100:.0f}% | Topics: {topics}',
            json.dumps(data),
        )


def extract_requirements(ctx: StageContext) -> None:
    """Extract requirements per source, numbering after the existing maximum."""
    agent = STAGE_AGENTS[models.RunStatus.EXTRACTING_REQUIREMENTS]
    ctx.log(agent, models.LogLevel.PROCESSING, "Extracting requirements from classified sources...")

    existing = crud.list_requirements(ctx.db, ctx.project.id)
    counter = next_sequence([r.requirement_id for r in existing], "REQ-")
    known_titles = [r.title for r in existing]
    stored = 0

    for source in ctx.sources:
        crud.update_source_status(ctx.db, source, models.SourceStatus.EXTRACTING)
        chunks = chunk_text(source.content, ctx.settings.max_source_chars)
        if len(chunks) > 1:
            ctx.log(agent, models.LogLevel.INFO, f'Source "{source.name}" split into {len(chunks)} chunks')

        candidates: list[dict] = []
        for index, chunk in enumerate(chunks):
            label = f" (chunk {index + 1}/{len(chunks)})" if len(chunks) > 1 else ""
            prompt = (
                f"Extract ALL requirements from this communication{label}: explicit and implicit "
                "requirements, non-functional needs, business rules, integrations and constraints.\n\n"
                "Return JSON:\n"
                '{"requirements": [{"title": "...", "description": "...", '
                '"category": "functional|non_functional|business|technical|security|performance|compliance|integration", '
                '"priority": "critical|high|medium|low", "confidence": <0.0-1.0>, '
                '"source_excerpt": "<exact quote>", "reasoning": "...", "tags": ["..."]}]}\n\n'
                f'Source "{source.name}" (type: {source.type.value}){label}:\n{chunk}'
            )
            data = ctx.ask("You are a precision requirements extraction agent.", prompt)
            candidates.extend(r for r in data.get("requirements") or [] if isinstance(r, dict))

        seen: set[str] = set()
        for item in candidates:
            title = str(item.get("title") or "Untitled Requirement")
            normalized = title.lower().strip()
            if normalized in seen:
                continue
            seen.add(normalized)

            if any(is_similar_title(title, known, ctx.settings.title_similarity_threshold) for known in known_titles):
                ctx.log(agent, models.LogLevel.INFO, f'Skipped duplicate: "{title}" (similar requirement already exists)')
                continue

            counter += 1
            requirement_id = format_identifier("REQ-", counter)
            confidence = coerce_confidence(item.get("confidence"))
            category = coerce_enum(models.RequirementCategory, item.get("category"), models.RequirementCategory.FUNCTIONAL)
            requirement = models.Requirement(
                project_id=ctx.project.id,
                requirement_id=requirement_id,
                title=title[:500],
                description=str(item.get("description") or ""),
                category=category,
                priority=coerce_enum(models.RequirementPriority, item.get("priority"), models.RequirementPriority.MEDIUM),
                confidence_score=confidence,
                source_id=source.id,
                source_excerpt=str(item.get("source_excerpt") or ""),
                extraction_reasoning=item.get("reasoning") or None,
                tags=[str(t) for t in item.get("tags") or []],
            )
            ctx.db.add(requirement)
            ctx.db.flush()
            _add_link(ctx.db, ctx.project.id, "source", source.id, "requirement", requirement.id, "extracted_from", confidence)
            ctx.db.commit()
            known_titles.append(title)
            stored += 1
            ctx.log(
                agent,
                models.LogLevel.SUCCESS,
                f'{requirement_id}: "{title}" [{category.value}] confidence: {confidence * 100:.0f}%',
            )

        crud.update_source_status(ctx.db, source, models.SourceStatus.EXTRACTED)

    ctx.counts["requirements_found"] = stored
    ctx.log(agent, models.LogLevel.SUCCESS, f"Stored {stored} new requirement(s)")


def extract_stakeholders(ctx: StageContext) -> None:
    """Identify stakeholders; repeated names are merged case-insensitively."""
    agent = STAGE_AGENTS[models.RunStatus.EXTRACTING_STAKEHOLDERS]
    ctx.log(agent, models.LogLevel.PROCESSING, "Identifying stakeholders across all sources...")

    prompt = (
        "Identify ALL stakeholders mentioned across these communications: anyone who proposes, "
        "approves, influences, or is affected by requirements.\n\n"
        "Return JSON:\n"
        '{"stakeholders": [{"name": "...", "role": "...", "department": "...", '
        '"influence": "decision_maker|influencer|contributor|observer", '
        '"sentiment": "supportive|neutral|resistant|unknown"}]}\n\n'
        f"Communications:\n{ctx.combined_content()}"
    )
    data = ctx.ask("You are a stakeholder intelligence agent.", prompt)
    existing = {s.name.lower(): s for s in crud.list_stakeholders(ctx.db, ctx.project.id)}
    identified = 0

    for item in data.get("stakeholders") or []:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "Unknown").strip()
        role = str(item.get("role") or "")
        influence = coerce_enum(models.StakeholderInfluence, item.get("influence"), models.StakeholderInfluence.CONTRIBUTOR)
        mentioning = [s for s in ctx.sources if name.lower() in s.content.lower()]
        source_ids = [str(s.id) for s in (mentioning or ctx.sources)]

        stakeholder = existing.get(name.lower())
        if stakeholder:
            stakeholder.mention_count += 1
            stakeholder.source_ids = sorted(set(stakeholder.source_ids or []) | set(source_ids))
            stakeholder.role = role or stakeholder.role
            stakeholder.influence = influence
        else:
            stakeholder = models.Stakeholder(
                project_id=ctx.project.id,
                name=name[:255],
                role=role[:255],
                department=item.get("department") or None,
                influence=influence,
                sentiment=coerce_enum(models.StakeholderSentiment, item.get("sentiment"), models.StakeholderSentiment.UNKNOWN),
                mention_count=1,
                source_ids=source_ids,
            )
            ctx.db.add(stakeholder)
            existing[name.lower()] = stakeholder
        ctx.db.flush()

        for source in mentioning or ctx.sources[:1]:
            _add_link(
                ctx.db, ctx.project.id, "stakeholder", stakeholder.id, "source", source.id,
                "mentioned_in", 0.9 if mentioning else 0.5,
            )
        ctx.db.commit()
        identified += 1
        ctx.log(agent, models.LogLevel.SUCCESS, f"Identified: {name} ({role}), {influence.value}")

    ctx.counts["stakeholders_found"] = identified


def extract_decisions(ctx: StageContext) -> None:
    """Extract decisions, numbered DEC-nnn after the existing maximum."""
    agent = STAGE_AGENTS[models.RunStatus.EXTRACTING_DECISIONS]
    ctx.log(agent, models.LogLevel.PROCESSING, "Extracting decisions and approvals...")

    prompt = (
        "Extract ALL confirmed decisions from these communications: architectural, functional, "
        "business, technical or process choices.\n\n"
        "Return JSON:\n"
        '{"decisions": [{"title": "...", "description": "...", '
        '"type": "architectural|functional|business|technical|process", '
        '"status": "proposed|approved|rejected|deferred", "source_excerpt": "<exact quote>", '
        '"confidence": <0.0-1.0>, "impacted_requirements": ["..."]}]}\n\n'
        f"Communications:\n{ctx.combined_content()}"
    )
    data = ctx.ask("You are a decision intelligence agent.", prompt)
    counter = next_sequence([d.decision_id for d in crud.list_decisions(ctx.db, ctx.project.id)], "DEC-")
    stored = 0

    for item in data.get("decisions") or []:
        if not isinstance(item, dict):
            continue
        decision_type = str(item.get("type") or "technical").lower()
        if decision_type not in DECISION_TYPES:
            decision_type = "business" if decision_type == "scope" else "technical"

        counter += 1
        decision_id = format_identifier("DEC-", counter)
        excerpt = str(item.get("source_excerpt") or "")
        source = _match_source(ctx.sources, excerpt)
        confidence = coerce_confidence(item.get("confidence"))
        decision = models.Decision(
            project_id=ctx.project.id,
            decision_id=decision_id,
            title=str(item.get("title") or "Untitled Decision")[:500],
            description=str(item.get("description") or ""),
            type=decision_type,
            status=coerce_enum(models.DecisionStatus, item.get("status"), models.DecisionStatus.PROPOSED),
            source_id=source.id if source else None,
            source_excerpt=excerpt,
            confidence_score=confidence,
            impacted_requirement_ids=[str(r) for r in item.get("impacted_requirements") or []],
        )
        ctx.db.add(decision)
        ctx.db.flush()
        if source:
            _add_link(ctx.db, ctx.project.id, "decision", decision.id, "source", source.id, "decided_in", confidence)
        ctx.db.commit()
        stored += 1
        ctx.log(agent, models.LogLevel.SUCCESS, f'{decision_id}: "{decision.title}" [{decision_type}] {decision.status.value}')

    ctx.counts["decisions_found"] = stored


def extract_timeline(ctx: StageContext) -> None:
    """Extract milestones, deadlines and other dated events."""
    agent = STAGE_AGENTS[models.RunStatus.EXTRACTING_TIMELINE]
    ctx.log(agent, models.LogLevel.PROCESSING, "Extracting timeline events and milestones...")

    prompt = (
        "Extract ALL timeline events, milestones, deadlines, and date-related items.\n\n"
        "Return JSON:\n"
        '{"events": [{"title": "...", "description": "...", "date": "<date or null>", '
        '"type": "milestone|deadline|decision|approval|dependency", "confidence": <0.0-1.0>}]}\n\n'
        f"Communications:\n{ctx.combined_content()}"
    )
    data = ctx.ask("You are a timeline intelligence agent. Extract dates, milestones, and deadlines.", prompt)
    stored = 0
    for item in data.get("events") or []:
        if not isinstance(item, dict):
            continue
        event_type = coerce_enum(models.TimelineEventType, item.get("type"), models.TimelineEventType.MILESTONE)
        date = item.get("date")
        event = models.TimelineEvent(
            project_id=ctx.project.id,
            title=str(item.get("title") or "Untitled Event")[:500],
            description=str(item.get("description") or ""),
            date=str(date)[:50] if date else None,
            type=event_type,
            source_id=ctx.sources[0].id if ctx.sources else None,
            confidence_score=coerce_confidence(item.get("confidence")),
        )
        ctx.db.add(event)
        ctx.db.commit()
        stored += 1
        ctx.log(agent, models.LogLevel.SUCCESS, f'{event_type.value}: "{event.title}" ({event.date or "no date"})')

    ctx.log(agent, models.LogLevel.SUCCESS, f"Stored {stored} timeline event(s)")


def detect_conflicts(ctx: StageContext) -> None:
    """Detect contradictions; only conflicts naming two known requirements are kept."""
    agent = STAGE_AGENTS[models.RunStatus.DETECTING_CONFLICTS]
    ctx.log(agent, models.LogLevel.PROCESSING, "Scanning for requirement conflicts...")

    requirements = crud.list_requirements(ctx.db, ctx.project.id)
    if len(requirements) < 2:
        ctx.log(agent, models.LogLevel.INFO, "Not enough requirements for conflict analysis.")
        return

    listing = "\n".join(f"{r.requirement_id}: {r.title} - {r.description}" for r in requirements)
    prompt = (
        "Analyze these requirements for conflicts, contradictions, or incompatibilities.\n\n"
        f"Requirements:\n{listing}\n\n"
        "Return JSON:\n"
        '{"conflicts": [{"title": "...", "description": "...", "severity": "critical|major|minor", '
        '"requirement_ids": ["REQ-xxx", "REQ-yyy"], "explanation": "..."}]}\n\n'
        'If no conflicts found, return {"conflicts": []}'
    )
    data = ctx.ask("You are a conflict detection agent. Identify contradictions between requirements.", prompt)
    by_identifier = {r.requirement_id: r for r in requirements}
    counter = next_sequence([c.conflict_id for c in crud.list_conflicts(ctx.db, ctx.project.id)], "CON-")
    stored = 0

    for item in data.get("conflicts") or []:
        if not isinstance(item, dict):
            continue
        referenced = [str(r) for r in item.get("requirement_ids") or []]
        matching = [str(by_identifier[r].id) for r in dict.fromkeys(referenced) if r in by_identifier]
        if len(matching) < 2:
            continue

        counter += 1
        severity = coerce_enum(models.ConflictSeverity, item.get("severity"), models.ConflictSeverity.MINOR)
        description = str(item.get("description") or "")
        if item.get("explanation"):
            description = f"{description} | {item['explanation']}"
        crud.store_conflict(
            ctx.db,
            ctx.project.id,
            format_identifier("CON-", counter),
            str(item.get("title") or "Untitled Conflict")[:500],
            description,
            severity,
            matching,
        )
        stored += 1
        ctx.log(
            agent,
            models.LogLevel.WARNING,
            f'{severity.value.upper()}: "{item.get("title")}" ({" vs ".join(referenced)})',
        )

    if stored == 0:
        ctx.log(agent, models.LogLevel.SUCCESS, "No conflicts detected between requirements.")
    ctx.counts["conflicts_found"] = stored


CONFLICT_LINK_STRENGTH = {
    models.ConflictSeverity.CRITICAL: 0.95,
    models.ConflictSeverity.MAJOR: 0.8,
    models.ConflictSeverity.MINOR: 0.6,
}


def build_traceability(ctx: StageContext) -> None:
    """Link requirements to stakeholders, decisions, conflicts and timeline events."""
    agent = STAGE_AGENTS[models.RunStatus.BUILDING_TRACEABILITY]
    ctx.log(agent, models.LogLevel.PROCESSING, "Building traceability graph...")

    project_id = ctx.project.id
    requirements = crud.list_requirements(ctx.db, project_id)
    stakeholders = crud.list_stakeholders(ctx.db, project_id)
    decisions = crud.list_decisions(ctx.db, project_id)
    conflicts = crud.list_conflicts(ctx.db, project_id)
    events = crud.list_timeline_events(ctx.db, project_id)
    links = 0

    for requirement in requirements:
        excerpt = (requirement.source_excerpt or "").lower()
        for stakeholder in stakeholders:
            if stakeholder.name and stakeholder.name.lower() in excerpt:
                _add_link(ctx.db, project_id, "requirement", requirement.id, "stakeholder", stakeholder.id, "proposed_by", 0.85)
                links += 1

    for decision in decisions:
        text = f"{decision.description or ''} {decision.title or ''}".lower()
        linked = False
        for requirement in requirements:
            title = (requirement.title or "").lower()
            if (len(title) > 5 and title[:30] in text) or requirement.requirement_id.lower() in text:
                _add_link(ctx.db, project_id, "decision", decision.id, "requirement", requirement.id, "affects", 0.75)
                links += 1
                linked = True
        if not linked and requirements:
            best = max(
                requirements,
                key=lambda r: sum(1 for w in (r.title or "").lower().split() if len(w) > 3 and w in text),
            )
            _add_link(ctx.db, project_id, "decision", decision.id, "requirement", best.id, "affects", 0.5)
            links += 1

    for conflict in conflicts:
        for requirement_uuid in conflict.requirement_ids or []:
            _add_link(
                ctx.db, project_id, "conflict", conflict.id, "requirement", requirement_uuid,
                "blocks", CONFLICT_LINK_STRENGTH.get(conflict.severity, 0.6),
            )
            links += 1

    for event in events:
        if event.source_id:
            _add_link(ctx.db, project_id, "timeline", event.id, "source", event.source_id, "mentioned_in", 0.7)
            links += 1

    ctx.db.commit()
    ctx.log(
        agent,
        models.LogLevel.SUCCESS,
        f"Traceability graph built: {links} links across {len(requirements)} requirements, "
        f"{len(stakeholders)} stakeholders, {len(decisions)} decisions, {len(conflicts)} conflicts",
    )


def _breakdown(values: list[str]) -> str:
    counts: dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    return ", ".join(f"{k}: {v}" for k, v in counts.items())


def generate_documents(ctx: StageContext) -> None:
    """Generate a new BRD version from everything extracted so far."""
    agent = STAGE_AGENTS[models.RunStatus.GENERATING_DOCUMENTS]
    ctx.log(agent, models.LogLevel.PROCESSING, "Generating BRD from structured intelligence...")

    project_id = ctx.project.id
    requirements = crud.list_requirements(ctx.db, project_id)
    stakeholders = crud.list_stakeholders(ctx.db, project_id)
    decisions = crud.list_decisions(ctx.db, project_id)
    conflicts = crud.list_conflicts(ctx.db, project_id)
    scores = [r.confidence_score for r in requirements]
    avg_confidence = sum(scores) / len(scores) if scores else 0

    sections = [
        f"SOURCES ANALYZED ({len(ctx.sources)}):",
        *(f'- "{s.name}" ({s.type.value}, {(s.source_metadata or {}).get("word_count", "?")} words)' for s in ctx.sources),
        f"\nREQUIREMENTS ({len(requirements)}), categories: {_breakdown([r.category.value for r in requirements])}; "
        f"priorities: {_breakdown([r.priority.value for r in requirements])}; average confidence {avg_confidence * 100:.0f}%",
        *(
            f"{r.requirement_id} [{r.category.value}/{r.priority.value}]: {r.title}\n  {r.description}\n"
            f'  Evidence: "{(r.source_excerpt or "N/A")[:1000]}"'
            for r in requirements
        ),
        f"\nSTAKEHOLDERS ({len(stakeholders)}):",
        *(f"- {s.name} ({s.role}), influence: {s.influence.value}" for s in stakeholders),
        f"\nDECISIONS ({len(decisions)}):",
        *(f"{d.decision_id} [{d.type}/{d.status.value}]: {d.title}\n  {d.description}" for d in decisions),
        f"\nCONFLICTS ({len(conflicts)}):",
        *(f"{c.conflict_id} [{c.severity.value}]: {c.title}\n  {c.description}" for c in conflicts),
        "\nSOURCE CONTENT:",
        "\n\n".join(f"--- {s.name} ({s.type.value}) ---\n{s.content[:15000]}" for s in ctx.sources)[:DOCUMENT_CONTEXT_LIMIT],
    ]
    keys = ", ".join(
        ["executiveSummary", "projectOverview", "businessObjectives", "scopeDefinition",
         "stakeholderAnalysis", "functionalAnalysis", "nonFunctionalAnalysis",
         "decisionAnalysis", "riskAssessment", "intelligenceSummary", "confidenceReport"]
    )
    prompt = (
        f'Generate a Business Requirements Document for project "{ctx.project.name}".\n'
        f"{ctx.project.description}\n\n"
        "========== EXTRACTED INTELLIGENCE ==========\n"
        + "\n".join(sections)
        + "\n========== END DATA ==========\n\n"
        f"Return ONLY a JSON object with the keys: {keys}. Narrative sections are strings, "
        "businessObjectives is a list, scopeDefinition, intelligenceSummary and confidenceReport are objects. "
        "Cite requirement IDs, stakeholder names and decision IDs inline."
    )
    data = ctx.ask(
        "You are a senior business analyst generating an intelligence-driven Business Requirements Document. "
        "Generate ONLY from the provided extracted intelligence.",
        prompt,
        max_tokens=ctx.settings.document_max_tokens,
    )
    content = normalize_brd(data)
    document = crud.store_document(
        ctx.db,
        project_id,
        models.DocumentType.BRD,
        content.model_dump(mode="json"),
        generated_from={
            "requirement_count": len(requirements),
            "source_count": len(ctx.sources),
            "stakeholder_count": len(stakeholders),
            "decision_count": len(decisions),
        },
    )
    ctx.log(agent, models.LogLevel.SUCCESS, f"BRD v{document.version} generated ({len(content.sections)} sections)")


# Stage -> agent, in pipeline order
STAGE_HANDLERS: list[tuple[models.RunStatus, Callable[[StageContext], None]]] = [
    (models.RunStatus.INGESTING, ingest),
    (models.RunStatus.CLASSIFYING, classify),
    (models.RunStatus.EXTRACTING_REQUIREMENTS, extract_requirements),
    (models.RunStatus.EXTRACTING_STAKEHOLDERS, extract_stakeholders),
    (models.RunStatus.EXTRACTING_DECISIONS, extract_decisions),
    (models.RunStatus.EXTRACTING_TIMELINE, extract_timeline),
    (models.RunStatus.DETECTING_CONFLICTS, detect_conflicts),
    (models.RunStatus.BUILDING_TRACEABILITY, build_traceability),
    (models.RunStatus.GENERATING_DOCUMENTS, generate_documents),
]
