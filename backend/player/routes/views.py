"""View routes --- CRUD, cloning, Applications and Application instances."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from player.database import get_db
from player.middleware.auth import get_authorization_service, require_system_permission
from player.models import (
    Application,
    ApplicationInstance,
    ApplicationTemplate,
    View,
    ViewStatus,
)
from player.rbac import SystemPermission, TeamPermission, ViewPermission
from player.services import views
from player.services.authorization import AuthorizationService
from player.services.resource_resolver import ResourceKind, ResourceRef

router = APIRouter(prefix="/api", tags=["views"])

create_views = require_system_permission(SystemPermission.CREATE_VIEWS)
manage_applications = require_system_permission(SystemPermission.MANAGE_APPLICATIONS)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class ViewCreate(BaseModel):
    name: str
    description: str | None = None
    status: ViewStatus = ViewStatus.ACTIVE
    create_admin_team: bool = True


class ViewUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    status: ViewStatus | None = None


class ViewClone(BaseModel):
    name: str | None = None
    description: str | None = None


class ApplicationTemplateCreate(BaseModel):
    name: str
    url: str | None = None
    icon: str | None = None
    embeddable: bool = True
    load_in_background: bool = False


class ApplicationTemplateUpdate(BaseModel):
    name: str | None = None
    url: str | None = None
    icon: str | None = None
    embeddable: bool | None = None
    load_in_background: bool | None = None


class ApplicationCreate(BaseModel):
    name: str | None = None
    url: str | None = None
    icon: str | None = None
    embeddable: bool | None = None
    load_in_background: bool | None = None
    application_template_id: uuid.UUID | None = None


class ApplicationUpdate(ApplicationTemplateUpdate):
    application_template_id: uuid.UUID | None = None


class ApplicationInstanceCreate(BaseModel):
    application_id: uuid.UUID
    display_order: float = 0.0


class ApplicationInstanceUpdate(BaseModel):
    application_id: uuid.UUID | None = None
    display_order: float | None = None


def view_to_dict(v: View) -> dict:
    return {
        "id": str(v.id),
        "name": v.name,
        "description": v.description,
        "status": v.status,
        "parent_view_id": str(v.parent_view_id) if v.parent_view_id else None,
        "created_by": str(v.created_by) if v.created_by else None,
        "created_at": v.created_at.isoformat() if v.created_at else None,
    }


def application_to_dict(a: Application) -> dict:
    return {
        "id": str(a.id),
        "view_id": str(a.view_id),
        "name": a.name,
        "url": a.url,
        "icon": a.icon,
        "embeddable": a.embeddable,
        "load_in_background": a.load_in_background,
        "application_template_id": (
            str(a.application_template_id) if a.application_template_id else None
        ),
    }


def application_template_to_dict(t: ApplicationTemplate) -> dict:
    return {
        "id": str(t.id),
        "name": t.name,
        "url": t.url,
        "icon": t.icon,
        "embeddable": t.embeddable,
        "load_in_background": t.load_in_background,
    }


def application_instance_to_dict(i: ApplicationInstance) -> dict:
    return {
        "id": str(i.id),
        "team_id": str(i.team_id),
        "application_id": str(i.application_id),
        "display_order": i.display_order,
    }


def _view(view_id: uuid.UUID) -> ResourceRef:
    return ResourceRef(ResourceKind.VIEW, view_id)


def _application(application_id: uuid.UUID) -> ResourceRef:
    return ResourceRef(ResourceKind.APPLICATION, application_id)


def _instance(instance_id: uuid.UUID) -> ResourceRef:
    return ResourceRef(ResourceKind.APPLICATION_INSTANCE, instance_id)


# ---------------------------------------------------------------------------
# VIEWS
# ---------------------------------------------------------------------------


@router.get("/views")
async def list_views(
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(
        require_system_permission(SystemPermission.VIEW_VIEWS)
    ),
):
    items = [view_to_dict(v) for v in await views.list_views(db)]
    return {"items": items, "total": len(items)}


@router.get("/me/views")
async def list_my_views(
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    """Views the caller is a member of."""
    view_ids = auth.get_authorized_view_ids()
    items = [view_to_dict(v) for v in await views.list_views(db, view_ids)] if view_ids else []
    return {"items": items, "total": len(items)}


@router.get("/views/{view_id}")
async def get_view(
    view_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_VIEWS], [ViewPermission.VIEW_VIEW], resource=_view(view_id)
    )
    return view_to_dict(await views.get_view(db, view_id))


@router.post("/views", status_code=201)
async def create_view(
    body: ViewCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(create_views),
):
    view = await views.create_view(
        db,
        body.name,
        creator_id=auth.user_id,
        description=body.description,
        status=body.status,
        create_admin_team=body.create_admin_team,
    )
    return view_to_dict(view)


@router.put("/views/{view_id}")
async def edit_view(
    view_id: uuid.UUID,
    body: ViewUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.EDIT_VIEWS], [ViewPermission.EDIT_VIEW], resource=_view(view_id)
    )
    view = await views.edit_view(
        db, view_id, body.name, body.description, body.status, actor_id=auth.user_id
    )
    return view_to_dict(view)


@router.delete("/views/{view_id}", status_code=204)
async def delete_view(
    view_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_VIEWS], [ViewPermission.MANAGE_VIEW], resource=_view(view_id)
    )
    await views.delete_view(db, view_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/views/{view_id}/clone", status_code=201)
async def clone_view(
    view_id: uuid.UUID,
    body: ViewClone | None = None,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(create_views),
):
    body = body or ViewClone()
    clone = await views.clone_view(
        db, view_id, body.name, body.description, actor_id=auth.user_id
    )
    return view_to_dict(clone)


# ---------------------------------------------------------------------------
# APPLICATION TEMPLATES
# ---------------------------------------------------------------------------


@router.get("/application-templates")
async def list_application_templates(
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_APPLICATIONS, SystemPermission.VIEW_VIEWS],
        [ViewPermission.MANAGE_VIEW],
    )
    items = [application_template_to_dict(t) for t in await views.list_application_templates(db)]
    return {"items": items, "total": len(items)}


@router.get("/application-templates/{template_id}")
async def get_application_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require([SystemPermission.VIEW_APPLICATIONS], [ViewPermission.MANAGE_VIEW])
    return application_template_to_dict(await views.get_application_template(db, template_id))


@router.post("/application-templates", status_code=201)
async def create_application_template(
    body: ApplicationTemplateCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_applications),
):
    template = await views.create_application_template(
        db,
        body.name,
        url=body.url,
        icon=body.icon,
        embeddable=body.embeddable,
        load_in_background=body.load_in_background,
        actor_id=auth.user_id,
    )
    return application_template_to_dict(template)


@router.put("/application-templates/{template_id}")
async def edit_application_template(
    template_id: uuid.UUID,
    body: ApplicationTemplateUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_applications),
):
    template = await views.edit_application_template(
        db, template_id, body.dict(exclude_unset=True), actor_id=auth.user_id
    )
    return application_template_to_dict(template)


@router.delete("/application-templates/{template_id}", status_code=204)
async def delete_application_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_applications),
):
    await views.delete_application_template(db, template_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# APPLICATIONS
# ---------------------------------------------------------------------------


@router.get("/views/{view_id}/applications")
async def list_applications(
    view_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_APPLICATIONS, SystemPermission.VIEW_VIEWS],
        [ViewPermission.VIEW_VIEW],
        resource=_view(view_id),
    )
    items = [application_to_dict(a) for a in await views.list_applications(db, view_id)]
    return {"items": items, "total": len(items)}


@router.post("/views/{view_id}/applications", status_code=201)
async def create_application(
    view_id: uuid.UUID,
    body: ApplicationCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_APPLICATIONS, SystemPermission.MANAGE_VIEWS],
        [ViewPermission.MANAGE_VIEW],
        resource=_view(view_id),
    )
    application = await views.create_application(
        db,
        view_id,
        body.name,
        url=body.url,
        icon=body.icon,
        embeddable=body.embeddable,
        load_in_background=body.load_in_background,
        template_id=body.application_template_id,
    )
    return application_to_dict(application)


@router.get("/teams/{team_id}/application-instances")
async def list_application_instances(
    team_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_VIEWS],
        [ViewPermission.VIEW_VIEW],
        [TeamPermission.VIEW_TEAM],
        resource=ResourceRef(ResourceKind.TEAM, team_id),
    )
    items = [
        application_instance_to_dict(i)
        for i in await views.list_application_instances(db, team_id)
    ]
    return {"items": items, "total": len(items)}


@router.post("/teams/{team_id}/application-instances", status_code=201)
async def create_application_instance(
    team_id: uuid.UUID,
    body: ApplicationInstanceCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_VIEWS],
        [ViewPermission.MANAGE_VIEW],
        resource=ResourceRef(ResourceKind.TEAM, team_id),
    )
    instance = await views.create_application_instance(
        db, team_id, body.application_id, body.display_order
    )
    return application_instance_to_dict(instance)


@router.get("/applications/{application_id}")
async def get_application(
    application_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_VIEWS], [ViewPermission.VIEW_VIEW], resource=_application(application_id)
    )
    return application_to_dict(await views.get_application(db, application_id))


@router.put("/applications/{application_id}")
async def edit_application(
    application_id: uuid.UUID,
    body: ApplicationUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_APPLICATIONS, SystemPermission.MANAGE_VIEWS],
        [ViewPermission.MANAGE_VIEW],
        resource=_application(application_id),
    )
    application = await views.edit_application(
        db, application_id, body.dict(exclude_unset=True), actor_id=auth.user_id
    )
    return application_to_dict(application)


@router.delete("/applications/{application_id}", status_code=204)
async def delete_application(
    application_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_APPLICATIONS, SystemPermission.MANAGE_VIEWS],
        [ViewPermission.MANAGE_VIEW],
        resource=_application(application_id),
    )
    await views.delete_application(db, application_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# APPLICATION INSTANCES
# ---------------------------------------------------------------------------


@router.get("/application-instances/{instance_id}")
async def get_application_instance(
    instance_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_VIEWS],
        [ViewPermission.VIEW_VIEW],
        [TeamPermission.VIEW_TEAM],
        resource=_instance(instance_id),
    )
    return application_instance_to_dict(await views.get_application_instance(db, instance_id))


@router.put("/application-instances/{instance_id}")
async def edit_application_instance(
    instance_id: uuid.UUID,
    body: ApplicationInstanceUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_VIEWS], [ViewPermission.MANAGE_VIEW], resource=_instance(instance_id)
    )
    instance = await views.edit_application_instance(
        db, instance_id, body.application_id, body.display_order, actor_id=auth.user_id
    )
    return application_instance_to_dict(instance)


@router.delete("/application-instances/{instance_id}", status_code=204)
async def delete_application_instance(
    instance_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_VIEWS], [ViewPermission.MANAGE_VIEW], resource=_instance(instance_id)
    )
    await views.delete_application_instance(db, instance_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def _move(
    db: AsyncSession,
    auth: AuthorizationService,
    instance_id: uuid.UUID,
    direction: views.MoveDirection,
) -> dict:
    await auth.require(
        [SystemPermission.MANAGE_VIEWS],
        [ViewPermission.MANAGE_VIEW],
        [TeamPermission.MANAGE_TEAM],
        resource=_instance(instance_id),
    )
    ordered = await views.move_application_instance(
        db, instance_id, direction, actor_id=auth.user_id
    )
    items = [application_instance_to_dict(i) for i in ordered]
    return {"items": items, "total": len(items)}


@router.post("/application-instances/{instance_id}/move-up")
async def move_application_instance_up(
    instance_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    """Swap with the instance above; returns the Team's instances in order."""
    return await _move(db, auth, instance_id, views.MoveDirection.UP)


@router.post("/application-instances/{instance_id}/move-down")
async def move_application_instance_down(
    instance_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    return await _move(db, auth, instance_id, views.MoveDirection.DOWN)
