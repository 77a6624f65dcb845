"""Lifecycle stage ordering for contact writes.

HubSpot only lets ``lifecyclestage`` move forward through the funnel:
a write that would move a contact backwards is silently ignored unless the
field is cleared first. ``resolve_lifecycle`` compares the incoming stage with
the contact's current one and returns the ordered writes needed so that the
requested stage always lands:

- no existing contact                     -> create
- incoming >= existing (or existing unset) -> update
- incoming <  existing                     -> clear stage, then update

The plan is executed strictly in order by the engine; the second write of a
backward move never starts before the clear has completed.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence

import structlog

from src.hubsync.contacts.schemas import (
    LIFECYCLE_PROPERTY,
    LifecyclePlan,
    LifecycleStage,
    LifecycleState,
    NormalizedProperty,
    RemoteContact,
    WriteKind,
    WriteOperation,
)

logger = structlog.get_logger(__name__)


def incoming_stage(properties: Sequence[NormalizedProperty]) -> tuple[bool, LifecycleStage | None]:
    """Find the lifecycle stage being written.

    Returns:
        ``(present, stage)``: whether the property is being written at all,
        and the parsed stage (None when the token is not recognized).
    """
    for prop in properties:
        if prop.property == LIFECYCLE_PROPERTY and prop.value not in (None, ""):
            return True, LifecycleStage.parse(prop.value)
    return False, None


def classify(incoming: LifecycleStage | None, contact: RemoteContact | None) -> LifecycleState:
    if incoming is None:
        return LifecycleState.INDETERMINATE
    if contact is None:
        return LifecycleState.NO_EXISTING_CONTACT

    existing = contact.lifecycle_stage
    if existing is None or incoming.rank >= existing.rank:
        return LifecycleState.EXISTING_LOWER_OR_EQUAL_STAGE
    return LifecycleState.EXISTING_HIGHER_STAGE


def with_canonical_stage(
    properties: Sequence[NormalizedProperty], stage: LifecycleStage
) -> list[NormalizedProperty]:
    """Replace the written stage token with the stage's canonical value.

    ``" Lead "`` parses as LEAD but HubSpot's enumeration only accepts ``lead``.
    """
    return [
        NormalizedProperty(property=LIFECYCLE_PROPERTY, value=stage.value)
        if prop.property == LIFECYCLE_PROPERTY
        else prop
        for prop in properties
    ]


def clear_stage_properties() -> list[NormalizedProperty]:
    return [NormalizedProperty(property=LIFECYCLE_PROPERTY, value="")]


def resolve_lifecycle(
    properties: list[NormalizedProperty],
    incoming: LifecycleStage | None,
    contact: RemoteContact | None,
) -> LifecyclePlan:
    """Plan the writes that apply ``properties`` without losing a stage change.

    An INDETERMINATE plan has no operations: the caller falls back to a plain
    create-or-update and leaves token validation to HubSpot.
    """
    state = classify(incoming, contact)

    if state == LifecycleState.INDETERMINATE:
        operations: list[WriteOperation] = []
    elif state == LifecycleState.NO_EXISTING_CONTACT:
        operations = [WriteOperation(kind=WriteKind.CREATE, properties=properties)]
    elif state == LifecycleState.EXISTING_LOWER_OR_EQUAL_STAGE:
        operations = [
            WriteOperation(kind=WriteKind.UPDATE, vid=contact.vid, properties=properties)
        ]
    else:
        operations = [
            WriteOperation(
                kind=WriteKind.UPDATE,
                vid=contact.vid,
                properties=clear_stage_properties(),
            ),
            WriteOperation(kind=WriteKind.UPDATE, vid=contact.vid, properties=properties),
        ]

    logger.debug(
        "lifecycle.resolved",
        state=state.value,
        incoming=incoming.value if incoming else None,
        existing=(
            contact.lifecycle_stage.value
            if contact is not None and contact.lifecycle_stage
            else None
        ),
        writes=len(operations),
    )
    return LifecyclePlan(state=state, operations=operations)


async def run_plan(
    plan: LifecyclePlan,
    execute: Callable[[WriteOperation], Awaitable[None]],
) -> None:
    """Execute the plan's writes one after another, stopping at the first failure."""
    for index, operation in enumerate(plan.operations):
        logger.debug(
            "lifecycle.write",
            step=index + 1,
            of=len(plan.operations),
            kind=operation.kind.value,
            vid=operation.vid,
        )
        await execute(operation)
