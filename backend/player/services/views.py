"""Views, their Applications, and View cloning.

Cloning copies the View graph explicitly: each copied row is recorded in an
``old id -> new id`` map and every reference inside the copy is rewritten
through that map.  Copied:

* the View itself (``parent_view_id`` points at the source, status Active)
* its Applications, still linked to their ApplicationTemplate
* its Teams, keeping each Team's TeamRole and direct permission assignments
* each Team's ApplicationInstances, re-pointed at the copied Applications

Memberships are not copied.
"""
from __future__ import annotations

import enum
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from player.config import settings
from player.database import get_or_404
from player.exceptions import EntityNotFoundError, InvalidRequestError
from player.models import (
    Application,
    ApplicationInstance,
    ApplicationTemplate,
    Team,
    TeamPermissionAssignment,
    TeamRole,
    View,
    ViewStatus,
)
from player.services.memberships import add_user_to_team
from player.services.teams import delete_team

logger = logging.getLogger(__name__)

ADMIN_TEAM_NAME = "Admin"


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


async def list_views(db: AsyncSession, view_ids: list[uuid.UUID] | None = None) -> list[View]:
    stmt = select(View).order_by(View.name)
    if view_ids is not None:
        stmt = stmt.where(View.id.in_(view_ids))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_view(db: AsyncSession, view_id: uuid.UUID) -> View:
    return await get_or_404(db, View, view_id)


async def create_view(
    db: AsyncSession,
    name: str,
    creator_id: uuid.UUID,
    description: str | None = None,
    status: ViewStatus = ViewStatus.ACTIVE,
    create_admin_team: bool = True,
) -> View:
    """Create a View.  The creator joins its Admin team as View creator role."""
    view = View(
        name=name,
        description=description,
        status=ViewStatus(status).value,
        created_by=creator_id,
    )
    db.add(view)
    await db.flush()

    if create_admin_team:
        creator_role_id = await db.scalar(
            select(TeamRole.id).where(TeamRole.name == settings.DEFAULT_VIEW_CREATOR_ROLE)
        )
        if creator_role_id is None:
            raise EntityNotFoundError("TeamRole", settings.DEFAULT_VIEW_CREATOR_ROLE)
        team = Team(view_id=view.id, name=ADMIN_TEAM_NAME, role_id=creator_role_id)
        db.add(team)
        await db.flush()
        await add_user_to_team(db, team.id, creator_id, actor_id=creator_id, commit=False)

    await db.commit()
    logger.warning("View %s (%s) created by %s", view.name, view.id, creator_id)
    return view


async def edit_view(
    db: AsyncSession,
    view_id: uuid.UUID,
    name: str | None = None,
    description: str | None = None,
    status: ViewStatus | None = None,
    actor_id: uuid.UUID | None = None,
) -> View:
    view = await get_or_404(db, View, view_id)
    if name is not None:
        view.name = name
    if description is not None:
        view.description = description
    if status is not None:
        view.status = ViewStatus(status).value
    await db.commit()
    logger.warning("View %s (%s) edited by %s", view.name, view.id, actor_id)
    return view


async def delete_view(
    db: AsyncSession, view_id: uuid.UUID, actor_id: uuid.UUID | None = None
) -> None:
    view = await get_or_404(db, View, view_id)

    team_ids = (await db.execute(select(Team.id).where(Team.view_id == view.id))).scalars().all()
    for team_id in team_ids:
        await delete_team(db, team_id, actor_id=actor_id, commit=False)

    applications = (await db.execute(
        select(Application).where(Application.view_id == view.id)
    )).scalars().all()
    for application in applications:
        await db.delete(application)
    await db.flush()

    await db.delete(view)
    await db.commit()
    logger.warning("View %s (%s) deleted by %s", view.name, view.id, actor_id)


# ---------------------------------------------------------------------------
# Application templates
# ---------------------------------------------------------------------------

APPLICATION_FIELDS = ("name", "url", "icon", "embeddable", "load_in_background")
CLEARABLE_FIELDS = ("url", "icon")


def _apply_changes(target: Application | ApplicationTemplate, changes: dict) -> None:
    for field in APPLICATION_FIELDS:
        if field not in changes:
            continue
        if changes[field] is None and field not in CLEARABLE_FIELDS:
            continue
        setattr(target, field, changes[field])


async def list_application_templates(db: AsyncSession) -> list[ApplicationTemplate]:
    result = await db.execute(select(ApplicationTemplate).order_by(ApplicationTemplate.name))
    return list(result.scalars().all())


async def get_application_template(
    db: AsyncSession, template_id: uuid.UUID
) -> ApplicationTemplate:
    return await get_or_404(db, ApplicationTemplate, template_id)


async def create_application_template(
    db: AsyncSession,
    name: str,
    url: str | None = None,
    icon: str | None = None,
    embeddable: bool = True,
    load_in_background: bool = False,
    actor_id: uuid.UUID | None = None,
) -> ApplicationTemplate:
    template = ApplicationTemplate(
        name=name,
        url=url,
        icon=icon,
        embeddable=embeddable,
        load_in_background=load_in_background,
    )
    db.add(template)
    await db.commit()
    logger.info("ApplicationTemplate %s (%s) created by %s", template.name, template.id, actor_id)
    return template


async def edit_application_template(
    db: AsyncSession,
    template_id: uuid.UUID,
    changes: dict,
    actor_id: uuid.UUID | None = None,
) -> ApplicationTemplate:
    template = await get_or_404(db, ApplicationTemplate, template_id)
    _apply_changes(template, changes)
    await db.commit()
    logger.info("ApplicationTemplate %s (%s) edited by %s", template.name, template.id, actor_id)
    return template


async def delete_application_template(
    db: AsyncSession, template_id: uuid.UUID, actor_id: uuid.UUID | None = None
) -> None:
    template = await get_or_404(db, ApplicationTemplate, template_id)
    await db.execute(
        update(Application)
        .where(Application.application_template_id == template.id)
        .values(application_template_id=None)
    )
    await db.delete(template)
    await db.commit()
    logger.warning("ApplicationTemplate %s (%s) deleted by %s", template.name, template.id, actor_id)


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


async def list_applications(db: AsyncSession, view_id: uuid.UUID) -> list[Application]:
    await get_or_404(db, View, view_id)
    result = await db.execute(
        select(Application).where(Application.view_id == view_id).order_by(Application.name)
    )
    return list(result.scalars().all())


async def get_application(db: AsyncSession, application_id: uuid.UUID) -> Application:
    return await get_or_404(db, Application, application_id)


async def create_application(
    db: AsyncSession,
    view_id: uuid.UUID,
    name: str | None = None,
    url: str | None = None,
    icon: str | None = None,
    embeddable: bool | None = None,
    load_in_background: bool | None = None,
    template_id: uuid.UUID | None = None,
) -> Application:
    """Add an Application to a View.

    With ``template_id`` every field left as None is taken from the
    template; without one, ``name`` is required.
    """
    await get_or_404(db, View, view_id)
    values = {
        "name": name,
        "url": url,
        "icon": icon,
        "embeddable": embeddable,
        "load_in_background": load_in_background,
    }
    if template_id is not None:
        template = await get_or_404(db, ApplicationTemplate, template_id)
        for field in APPLICATION_FIELDS:
            if values[field] is None:
                values[field] = getattr(template, field)
    if not values["name"]:
        raise InvalidRequestError("An Application needs a name or a template")
    if values["embeddable"] is None:
        values["embeddable"] = True
    if values["load_in_background"] is None:
        values["load_in_background"] = False

    application = Application(view_id=view_id, application_template_id=template_id, **values)
    db.add(application)
    await db.commit()
    return application


async def edit_application(
    db: AsyncSession,
    application_id: uuid.UUID,
    changes: dict,
    actor_id: uuid.UUID | None = None,
) -> Application:
    application = await get_or_404(db, Application, application_id)
    if "application_template_id" in changes:
        template_id = changes["application_template_id"]
        if template_id is not None:
            await get_or_404(db, ApplicationTemplate, template_id)
        application.application_template_id = template_id
    _apply_changes(application, changes)
    await db.commit()
    logger.info("Application %s (%s) edited by %s", application.name, application.id, actor_id)
    return application


async def delete_application(
    db: AsyncSession, application_id: uuid.UUID, actor_id: uuid.UUID | None = None
) -> None:
    application = await get_or_404(db, Application, application_id)
    instances = (await db.execute(
        select(ApplicationInstance).where(ApplicationInstance.application_id == application.id)
    )).scalars().all()
    for instance in instances:
        await db.delete(instance)
    await db.flush()

    await db.delete(application)
    await db.commit()
    logger.warning(
        "Application %s (%s) and %d instance(s) deleted by %s",
        application.name, application.id, len(instances), actor_id,
    )


# ---------------------------------------------------------------------------
# Application instances
# ---------------------------------------------------------------------------


class MoveDirection(str, enum.Enum):
    UP = "up"
    DOWN = "down"


async def list_application_instances(
    db: AsyncSession, team_id: uuid.UUID
) -> list[ApplicationInstance]:
    await get_or_404(db, Team, team_id)
    result = await db.execute(
        select(ApplicationInstance)
        .where(ApplicationInstance.team_id == team_id)
        .order_by(ApplicationInstance.display_order)
    )
    return list(result.scalars().all())


async def get_application_instance(
    db: AsyncSession, instance_id: uuid.UUID
) -> ApplicationInstance:
    return await get_or_404(db, ApplicationInstance, instance_id)


async def _ensure_application_in_team_view(
    db: AsyncSession, team_id: uuid.UUID, application_id: uuid.UUID
) -> None:
    team = await get_or_404(db, Team, team_id)
    application = await get_or_404(db, Application, application_id)
    if application.view_id != team.view_id:
        raise InvalidRequestError(
            f"Application {application.id} belongs to a different View than Team {team.id}"
        )


async def create_application_instance(
    db: AsyncSession,
    team_id: uuid.UUID,
    application_id: uuid.UUID,
    display_order: float = 0.0,
) -> ApplicationInstance:
    await _ensure_application_in_team_view(db, team_id, application_id)
    instance = ApplicationInstance(
        team_id=team_id, application_id=application_id, display_order=display_order
    )
    db.add(instance)
    await db.commit()
    return instance


async def edit_application_instance(
    db: AsyncSession,
    instance_id: uuid.UUID,
    application_id: uuid.UUID | None = None,
    display_order: float | None = None,
    actor_id: uuid.UUID | None = None,
) -> ApplicationInstance:
    instance = await get_or_404(db, ApplicationInstance, instance_id)
    if application_id is not None and application_id != instance.application_id:
        await _ensure_application_in_team_view(db, instance.team_id, application_id)
        instance.application_id = application_id
    if display_order is not None:
        instance.display_order = display_order
    await db.commit()
    logger.info("ApplicationInstance %s edited by %s", instance.id, actor_id)
    return instance


async def delete_application_instance(
    db: AsyncSession, instance_id: uuid.UUID, actor_id: uuid.UUID | None = None
) -> None:
    instance = await get_or_404(db, ApplicationInstance, instance_id)
    await db.delete(instance)
    await db.commit()
    logger.info("ApplicationInstance %s deleted by %s", instance.id, actor_id)


async def move_application_instance(
    db: AsyncSession,
    instance_id: uuid.UUID,
    direction: MoveDirection,
    actor_id: uuid.UUID | None = None,
) -> list[ApplicationInstance]:
    """Swap an instance with its neighbour in its Team's display order.

    The Team's instances are renumbered 0..n-1 first, so ties and gaps in
    ``display_order`` are resolved before the swap.  Moving the first one
    up or the last one down only renumbers.  Returns the Team's instances
    in their new order.
    """
    instance = await get_or_404(db, ApplicationInstance, instance_id)
    siblings = (await db.execute(
        select(ApplicationInstance)
        .where(ApplicationInstance.team_id == instance.team_id)
        .order_by(ApplicationInstance.display_order)
    )).scalars().all()
    ordered = list(siblings)

    index = ordered.index(instance)
    neighbour = index - 1 if MoveDirection(direction) is MoveDirection.UP else index + 1
    if 0 <= neighbour < len(ordered):
        ordered[index], ordered[neighbour] = ordered[neighbour], ordered[index]
    for position, sibling in enumerate(ordered):
        sibling.display_order = float(position)

    await db.commit()
    logger.info(
        "ApplicationInstance %s moved %s by %s", instance.id, MoveDirection(direction).value, actor_id
    )
    return ordered


# ---------------------------------------------------------------------------
# Clone
# ---------------------------------------------------------------------------


async def clone_view(
    db: AsyncSession,
    view_id: uuid.UUID,
    name: str | None = None,
    description: str | None = None,
    actor_id: uuid.UUID | None = None,
) -> View:
    source = await get_or_404(db, View, view_id)
    id_map: dict[uuid.UUID, uuid.UUID] = {}

    clone = View(
        id=uuid.uuid4(),
        name=name if name and name.strip() else f"Clone of {source.name}",
        description=description if description and description.strip() else source.description,
        status=ViewStatus.ACTIVE.value,
        parent_view_id=source.id,
        created_by=actor_id,
    )
    id_map[source.id] = clone.id
    db.add(clone)
    await db.flush()

    applications = (await db.execute(
        select(Application).where(Application.view_id == source.id)
    )).scalars().all()
    for application in applications:
        copy = Application(
            id=uuid.uuid4(),
            view_id=id_map[application.view_id],
            name=application.name,
            url=application.url,
            icon=application.icon,
            embeddable=application.embeddable,
            load_in_background=application.load_in_background,
            application_template_id=application.application_template_id,
        )
        id_map[application.id] = copy.id
        db.add(copy)

    teams = (await db.execute(select(Team).where(Team.view_id == source.id))).scalars().all()
    for team in teams:
        copy = Team(
            id=uuid.uuid4(),
            view_id=id_map[team.view_id],
            name=team.name,
            role_id=team.role_id,
        )
        id_map[team.id] = copy.id
        db.add(copy)
    await db.flush()

    team_ids = [team.id for team in teams]
    if team_ids:
        instances = (await db.execute(
            select(ApplicationInstance).where(ApplicationInstance.team_id.in_(team_ids))
        )).scalars().all()
        for instance in instances:
            db.add(ApplicationInstance(
                team_id=id_map[instance.team_id],
                application_id=id_map.get(instance.application_id, instance.application_id),
                display_order=instance.display_order,
            ))

        assignments = (await db.execute(
            select(TeamPermissionAssignment).where(TeamPermissionAssignment.team_id.in_(team_ids))
        )).scalars().all()
        for assignment in assignments:
            db.add(TeamPermissionAssignment(
                team_id=id_map[assignment.team_id],
                permission_id=assignment.permission_id,
            ))

    await db.commit()
    logger.warning(
        "View %s (%s) cloned to %s (%s) by %s",
        source.name, source.id, clone.name, clone.id, actor_id,
    )
    return clone
