"""
Transition Guard (``homestay_kernel.domain.guard``).

Responsibility
--------------
Pure decision function: given an application snapshot, the acting
identity, the requested transition and the facts gathered by the engine,
answer with the next status or a rejection naming the unmet condition.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O, no clock access (``context.today`` is
supplied), no side effects.  Called by the Workflow Engine before any write.

Evaluation order
----------------
1. ``status``    -- current status is a permitted source status.
2. ``role``      -- actor role is permitted for the transition.
3. ``ownership`` -- owners may act only on their own applications.
4. ``district``  -- district-scoped roles must match the application district.
5. ``kind``      -- transition applies to this application kind.
6. transition-specific checks, in table order.
"""

from __future__ import annotations

from homestay_kernel.domain.district import districts_match
from homestay_kernel.domain.dtos import (
    Actor,
    ApplicationSnapshot,
    GuardContext,
    TransitionDecision,
    TransitionRequest,
)
from homestay_kernel.domain.transitions import WorkflowRules, get_transition
from homestay_kernel.domain.workflow import DISTRICT_SCOPED_ROLES, ActorRole


def evaluate_transition(
    transition: str,
    application: ApplicationSnapshot,
    actor: Actor,
    request: TransitionRequest,
    context: GuardContext,
    rules: WorkflowRules | None = None,
) -> TransitionDecision:
    """Decide whether ``actor`` may apply ``transition`` to ``application``."""
    spec = get_transition(transition)
    rules = rules or WorkflowRules()
    current = application.status

    if current not in spec.from_statuses:
        allowed = ", ".join(sorted(s.value for s in spec.from_statuses))
        return TransitionDecision.reject(
            transition, current, "status",
            f"Cannot {transition.replace('_', ' ')}: application is {current.value} "
            f"(expected one of: {allowed})",
        )

    if actor.role not in spec.roles:
        return TransitionDecision.reject(
            transition, current, "role",
            f"Role {actor.role.value} is not permitted to {transition.replace('_', ' ')}",
        )

    if (
        spec.owner_only
        and actor.role == ActorRole.PROPERTY_OWNER
        and actor.actor_id != application.owner_id
    ):
        return TransitionDecision.reject(
            transition, current, "ownership",
            "You can only act on your own applications",
        )

    if actor.role in DISTRICT_SCOPED_ROLES and not districts_match(
        actor.district, application.district
    ):
        return TransitionDecision.reject(
            transition, current, "district",
            "You can only process applications from your district",
        )

    if spec.kinds is not None and application.kind not in spec.kinds:
        return TransitionDecision.reject(
            transition, current, "kind",
            f"{transition.replace('_', ' ').capitalize()} does not apply to "
            f"{application.kind.value} applications",
        )

    for check in spec.checks:
        unmet = check(application, actor, request, context, rules)
        if unmet is not None:
            condition, reason = unmet
            return TransitionDecision.reject(transition, current, condition, reason)

    return TransitionDecision.accept(transition, current, spec.to_status)
