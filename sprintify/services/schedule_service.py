"""
Scheduling service — dependency edits, forward-pass recalculation, baselines.

Two independent precedence graphs live in each project: one over phases,
one over WBS tasks (work items).  Both share the edge semantics below.

Required start of a successor S given predecessor P, lag L and the
successor's span D (days):

    FS  →  P.end   + L
    SS  →  P.start + L
    FF  →  P.end   + L − D
    SF  →  P.start + L − D

Recalculation walks the graph in topological order.  Roots keep their
start (undated roots anchor on the project start date, else today).  Any
other node gets the latest required start over its dated predecessors;
task constraints then apply (MUST_START_ON pins, START_NO_EARLIER_THAN
raises).  A node whose start differs from the candidate is shifted with
its span preserved.  Running it twice in a row changes nothing the
second time.

Manual edits (``update_dates``) are never blocked; they return advisory
warnings and are overridden by the next explicit recalculation.

Transaction policy: flush only, the route handler commits.  Edits and
recalculation hold the project row lock.
"""

import logging
from datetime import date, timedelta

from sprintify.core.exceptions import (
    ConflictError,
    PreconditionFailedError,
    ValidationError,
)
from sprintify.models import db
from sprintify.models.phase import (
    DEFAULT_PHASE_COLOR,
    DEPENDENCY_TYPES,
    Phase,
    PhaseDependency,
    WorkItemDependency,
)
from sprintify.models.project import SCHEDULED_METHODOLOGIES
from sprintify.models.sprint import Sprint
from sprintify.models.work_item import CONSTRAINT_TYPES, WorkItem
from sprintify.services.dependency_graph import DependencyGraph
from sprintify.services.helpers.scoped_queries import get_project, get_scoped
from sprintify.utils.helpers import parse_date_input, parse_int_input

logger = logging.getLogger(__name__)

DEPENDENCY_KINDS = {
    "phase": (Phase, PhaseDependency),
    "task": (WorkItem, WorkItemDependency),
}


def _kind_models(kind):
    try:
        return DEPENDENCY_KINDS[kind]
    except KeyError:
        raise ValidationError(
            f"kind must be one of: {', '.join(sorted(DEPENDENCY_KINDS))}",
            details={"kind": kind},
        ) from None


def _label(node):
    return getattr(node, "name", None) or getattr(node, "title", None) or str(node.id)


# ── Date arithmetic ──────────────────────────────────────────────────────────


def node_span(node):
    """Span in days kept constant when a node is shifted."""
    if node.start_date and node.end_date:
        return (node.end_date - node.start_date).days
    if isinstance(node, WorkItem):
        return 0 if node.is_milestone else (node.duration or 0)
    return 0


def required_start(pred, dependency_type, lag_days, succ_span):
    """Earliest start the edge allows, or None when the predecessor is undated."""
    if pred.start_date is None:
        return None
    pred_end = pred.end_date or pred.start_date + timedelta(days=node_span(pred))
    lag = timedelta(days=lag_days or 0)
    span = timedelta(days=succ_span)
    if dependency_type == "FS":
        return pred_end + lag
    if dependency_type == "SS":
        return pred.start_date + lag
    if dependency_type == "FF":
        return pred_end + lag - span
    if dependency_type == "SF":
        return pred.start_date + lag - span
    return None


def _apply_constraint(node, candidate):
    ctype = getattr(node, "constraint_type", "ASAP")
    cdate = getattr(node, "constraint_date", None)
    if cdate is None:
        return candidate
    if ctype == "MUST_START_ON":
        return cdate
    if ctype == "START_NO_EARLIER_THAN" and (candidate is None or cdate > candidate):
        return cdate
    return candidate


def _shift(node, new_start, span):
    new_end = new_start + timedelta(days=span)
    if node.start_date == new_start and node.end_date == new_end:
        return False
    node.start_date = new_start
    node.end_date = new_end
    return True


# ── Graph loading ────────────────────────────────────────────────────────────


def _load_phase_graph(project_id):
    phases = Phase.query_for_project(project_id).order_by(Phase.position, Phase.id).all()
    edges = PhaseDependency.query_for_project(project_id).all()
    return {p.id: p for p in phases}, DependencyGraph.from_edges([p.id for p in phases], edges)


def _load_task_graph(project_id):
    """Live tasks that are dated or take part in an edge.

    Undated items with no dependencies are backlog stories and stay undated.
    """
    items = (
        WorkItem.query_for_project(project_id)
        .filter(WorkItem.archived_at.is_(None))
        .order_by(WorkItem.outline_position, WorkItem.id)
        .all()
    )
    by_id = {i.id: i for i in items}
    edges = [
        e for e in WorkItemDependency.query_for_project(project_id).all()
        if e.predecessor_id in by_id and e.successor_id in by_id
    ]
    linked = {e.predecessor_id for e in edges} | {e.successor_id for e in edges}
    nodes = [i.id for i in items if i.start_date is not None or i.id in linked]
    return {n: by_id[n] for n in nodes}, DependencyGraph.from_edges(nodes, edges)


# ── Dependency edits ─────────────────────────────────────────────────────────


def add_dependency(project_id, predecessor_id, successor_id, kind="task",
                   dependency_type="FS", lag_days=0):
    """Create a precedence edge between two phases or two tasks.

    Returns:
        (edge, warnings)

    Raises:
        ValidationError: unknown kind / dependency type, non-integer lag, self-loop.
        PreconditionFailedError: the edge would close a cycle.
        NotFoundError: either endpoint missing or outside the project.
        ConflictError: the edge already exists.
    """
    node_model, edge_model = _kind_models(kind)
    dependency_type = (dependency_type or "FS").upper()
    if dependency_type not in DEPENDENCY_TYPES:
        raise ValidationError(
            f"dependency_type must be one of: {', '.join(sorted(DEPENDENCY_TYPES))}",
            details={"dependency_type": dependency_type},
        )
    lag_days = 0 if lag_days in (None, "") else parse_int_input(lag_days, "lag_days")

    get_project(project_id, lock=True)
    pred = get_scoped(node_model, predecessor_id, project_id=project_id)
    succ = get_scoped(node_model, successor_id, project_id=project_id)

    if pred.id == succ.id:
        raise ValidationError(f"A {kind} cannot depend on itself.",
                              details={"predecessor_id": pred.id, "successor_id": succ.id})

    existing = edge_model.query_for_project(project_id).filter_by(
        predecessor_id=pred.id, successor_id=succ.id,
    ).first()
    if existing:
        raise ConflictError(edge_model.__name__, "predecessor_id/successor_id",
                            f"{pred.id}->{succ.id}",
                            message="Dependency already exists")

    # Cycle check against every stored edge, fresh under the project lock
    graph = DependencyGraph.from_edges([], edge_model.query_for_project(project_id).all())
    if graph.would_create_cycle(pred.id, succ.id):
        logger.info("Rejected %s dependency %s → %s: cycle", kind, pred.id, succ.id,
                    extra={"project_id": project_id, "event_type": "dependency_cycle"})
        raise PreconditionFailedError(
            "Adding this dependency would create a cycle",
            details={"predecessor_id": pred.id, "successor_id": succ.id},
        )

    edge = edge_model(
        project_id=project_id,
        predecessor_id=pred.id,
        successor_id=succ.id,
        dependency_type=dependency_type,
        lag_days=lag_days,
    )
    db.session.add(edge)
    db.session.flush()

    warnings = []
    if pred.start_date is None or succ.start_date is None:
        undated = [_label(n) for n in (pred, succ) if n.start_date is None]
        warnings.append(f"Warning: {', '.join(repr(u) for u in undated)} has no dates yet.")
    else:
        needed = required_start(pred, dependency_type, lag_days, node_span(succ))
        if needed is not None and succ.start_date < needed:
            warnings.append(
                f'Warning: "{_label(succ)}" starts before "{_label(pred)}" allows '
                f"({dependency_type}{lag_days:+d} → {needed.isoformat()}). "
                "Consider adjusting dates."
            )

    logger.info("Dependency added %s %s → %s %s%+d", kind, pred.id, succ.id,
                dependency_type, lag_days,
                extra={"project_id": project_id, "event_type": "dependency_added"})
    return edge, warnings


def remove_dependency(project_id, predecessor_id, successor_id, kind="task"):
    """Delete an edge if present. Dates already shifted stay where they are.

    Returns:
        True if an edge was deleted, False if there was none.
    """
    _, edge_model = _kind_models(kind)
    get_project(project_id, lock=True)
    edge = edge_model.query_for_project(project_id).filter_by(
        predecessor_id=predecessor_id, successor_id=successor_id,
    ).first()
    if edge is None:
        return False
    db.session.delete(edge)
    db.session.flush()
    logger.info("Dependency removed %s %s → %s", kind, predecessor_id, successor_id,
                extra={"project_id": project_id, "event_type": "dependency_removed"})
    return True


def list_dependencies(project_id, kind="task"):
    _, edge_model = _kind_models(kind)
    get_project(project_id)
    return edge_model.query_for_project(project_id).order_by(edge_model.id).all()


# ── Recalculation ────────────────────────────────────────────────────────────


def _forward_pass(nodes, graph, anchor, kind, warnings):
    ordered, leftover = graph.topological_order()
    if leftover:
        logger.warning("%d %s node(s) left unscheduled by a dependency cycle", len(leftover), kind)
        warnings.append(
            f"Warning: {len(leftover)} {kind}(s) skipped because of a dependency cycle."
        )

    changed = 0
    for node_id in ordered:
        node = nodes[node_id]
        span = node_span(node)
        candidate = None
        for pred_id, (dep_type, lag) in graph.predecessors(node_id).items():
            needed = required_start(nodes[pred_id], dep_type, lag, span)
            if needed is not None and (candidate is None or needed > candidate):
                candidate = needed
        if candidate is None:
            candidate = node.start_date or anchor
        candidate = _apply_constraint(node, candidate)
        if _shift(node, candidate, span):
            changed += 1
    return changed


def recalculate_schedule(project_id, *, today=None):
    """Propagate dates through both precedence graphs of a project.

    Returns:
        {"updated", "phases_updated", "tasks_updated", "warnings"}

    Raises:
        PreconditionFailedError: the project is AGILE.
    """
    project = get_project(project_id, lock=True)
    if project.methodology not in SCHEDULED_METHODOLOGIES:
        raise PreconditionFailedError(
            "Schedule recalculation is only available for Waterfall and Hybrid projects."
        )
    anchor = project.start_date or today or date.today()
    warnings = []

    phases, phase_graph = _load_phase_graph(project_id)
    phases_updated = _forward_pass(phases, phase_graph, anchor, "phase", warnings)

    tasks, task_graph = _load_task_graph(project_id)
    tasks_updated = _forward_pass(tasks, task_graph, anchor, "task", warnings)

    db.session.flush()
    result = {
        "updated": phases_updated + tasks_updated,
        "phases_updated": phases_updated,
        "tasks_updated": tasks_updated,
        "warnings": warnings,
    }
    logger.info("Schedule recalculated: %d phase(s), %d task(s) moved",
                phases_updated, tasks_updated,
                extra={"project_id": project_id, "event_type": "schedule_recalculated"})
    return result


def save_baseline(project_id):
    """Copy current dates into the baseline fields of every live task and every phase."""
    get_project(project_id, lock=True)
    items = (
        WorkItem.query_for_project(project_id)
        .filter(WorkItem.archived_at.is_(None))
        .all()
    )
    for item in items:
        item.baseline_start_date = item.start_date
        item.baseline_end_date = item.end_date
    phases = Phase.query_for_project(project_id).all()
    for phase in phases:
        phase.baseline_start_date = phase.start_date
        phase.baseline_end_date = phase.end_date
    db.session.flush()
    logger.info("Baseline saved: %d task(s), %d phase(s)", len(items), len(phases),
                extra={"project_id": project_id, "event_type": "baseline_saved"})
    return {"saved": len(items) + len(phases), "work_items": len(items), "phases": len(phases)}


# ── Manual date edits ────────────────────────────────────────────────────────


def _predecessor_warnings(project_id, node, kind):
    node_model, edge_model = DEPENDENCY_KINDS[kind]
    warnings = []
    if node.start_date is None:
        return warnings
    edges = edge_model.query_for_project(project_id).filter_by(successor_id=node.id).all()
    for edge in edges:
        pred = db.session.get(node_model, edge.predecessor_id)
        needed = required_start(pred, edge.dependency_type, edge.lag_days, node_span(node))
        if needed is not None and node.start_date < needed:
            pred_end = pred.end_date or pred.start_date
            warnings.append(
                f'Warning: Start date conflicts with predecessor "{_label(pred)}" '
                f"(ends {pred_end.isoformat()})."
            )
    return warnings


def _sprint_warnings(phase):
    if not (phase.start_date and phase.end_date):
        return []
    outside = [
        s for s in phase.sprints
        if (s.start_date and s.start_date < phase.start_date)
        or (s.end_date and s.end_date > phase.end_date)
    ]
    if outside:
        return [f"Warning: {len(outside)} sprint(s) fall outside the new phase dates."]
    return []


def update_dates(project_id, node_id, kind, start=None, end=None):
    """Manually set the dates of a phase or task.

    Never refused for scheduling reasons; conflicts come back as warnings.

    Returns:
        (node, warnings)
    """
    node_model, _ = _kind_models(kind)
    node = get_scoped(node_model, node_id, project_id=project_id)
    start = parse_date_input(start, "start_date")
    end = parse_date_input(end, "end_date")
    if start and end and end < start:
        raise ValidationError("end_date must not be before start_date",
                              details={"start_date": start.isoformat(), "end_date": end.isoformat()})

    node.start_date = start
    node.end_date = end
    if kind == "task" and start and end:
        node.duration = (end - start).days
    db.session.flush()

    warnings = _predecessor_warnings(project_id, node, kind)
    if kind == "phase":
        warnings.extend(_sprint_warnings(node))
    logger.info("Manual dates set on %s %s: %s → %s", kind, node.id, start, end,
                extra={"project_id": project_id, "event_type": "dates_updated"})
    return node, warnings


# ── Phases ───────────────────────────────────────────────────────────────────


def _validate_progress(value):
    try:
        progress = int(value)
    except (TypeError, ValueError):
        raise ValidationError("progress must be an integer") from None
    if not 0 <= progress <= 100:
        raise ValidationError("progress must be between 0 and 100")
    return progress


def create_phase(project_id, data):
    """Create a timeline phase. Dates are optional; end before start is refused."""
    project = get_project(project_id)
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Phase name is required", details={"name": "required"})
    start = parse_date_input(data.get("start_date"), "start_date")
    end = parse_date_input(data.get("end_date"), "end_date")
    if start and end and end < start:
        raise ValidationError("end_date must not be before start_date")

    phase = Phase(
        project_id=project.id,
        name=name,
        description=data.get("description", ""),
        start_date=start,
        end_date=end,
        progress=_validate_progress(data.get("progress", 0)),
        is_gate=bool(data.get("is_gate", False)),
        color=data.get("color") or DEFAULT_PHASE_COLOR,
        position=Phase.query_for_project(project.id).count(),
    )
    db.session.add(phase)
    db.session.flush()
    logger.info("Phase created id=%s name=%s", phase.id, phase.name,
                extra={"project_id": project.id, "event_type": "phase_created"})
    return phase


def update_phase(project_id, phase_id, data):
    """Update phase attributes; date fields go through the manual date writer.

    Returns:
        (phase, warnings)
    """
    phase = get_scoped(Phase, phase_id, project_id=project_id)
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Phase name is required", details={"name": "required"})
        phase.name = name
    if "progress" in data:
        phase.progress = _validate_progress(data["progress"])
    for field in ("description", "color"):
        if field in data:
            setattr(phase, field, data[field])
    if "is_gate" in data:
        phase.is_gate = bool(data["is_gate"])

    warnings = []
    if "start_date" in data or "end_date" in data:
        phase, warnings = update_dates(
            project_id, phase.id, "phase",
            data.get("start_date", phase.start_date),
            data.get("end_date", phase.end_date),
        )
    db.session.flush()
    return phase, warnings


def list_phases(project_id):
    get_project(project_id)
    return Phase.query_for_project(project_id).order_by(Phase.position, Phase.id).all()


def set_task_constraint(project_id, task_id, constraint_type, constraint_date=None):
    """Attach a scheduling constraint to a task; applied on the next recalculation."""
    task = get_scoped(WorkItem, task_id, project_id=project_id)
    constraint_type = (constraint_type or "ASAP").upper()
    if constraint_type not in CONSTRAINT_TYPES:
        raise ValidationError(
            f"constraint_type must be one of: {', '.join(sorted(CONSTRAINT_TYPES))}"
        )
    cdate = parse_date_input(constraint_date, "constraint_date")
    if constraint_type != "ASAP" and cdate is None:
        raise ValidationError(f"{constraint_type} requires a constraint_date")
    task.constraint_type = constraint_type
    task.constraint_date = cdate if constraint_type != "ASAP" else None
    db.session.flush()
    return task


def assign_sprint_to_phase(project_id, sprint_id, phase_id):
    """Place a sprint inside a phase (Hybrid); ``phase_id=None`` detaches it."""
    sprint = get_scoped(Sprint, sprint_id, project_id=project_id)
    if phase_id is None:
        sprint.phase_id = None
        db.session.flush()
        return sprint, []
    phase = get_scoped(Phase, phase_id, project_id=project_id)
    sprint.phase_id = phase.id
    db.session.flush()
    return sprint, _sprint_warnings(phase)

