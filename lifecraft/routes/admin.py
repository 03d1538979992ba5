"""
Admin portal routes. Every endpoint here requires an admin profile.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from lifecraft.admin import AdminService
from lifecraft.community import CommunityService
from lifecraft.config import get_settings
from lifecraft.dependencies import (
    get_admin_service,
    get_community_service,
    get_drill_service,
    get_first_aid_service,
    get_mailer,
    get_module_service,
    get_storage_client,
    require_admin,
)
from lifecraft.drills import DrillService
from lifecraft.errors import InvalidRequestError
from lifecraft.first_aid import FirstAidService
from lifecraft.mailer import Mailer
from lifecraft.modules import ModuleService
from lifecraft.schemas import (
    CertificateUploadResponse,
    DrillCreate,
    DrillUpdate,
    LessonCreate,
    LessonUpdate,
    ModuleCreate,
    ModuleUpdate,
    NotificationResponse,
    QuestionCreate,
    QuestionUpdate,
    RegistrationStatusUpdate,
    SessionCreate,
    SessionUpdate,
    StatusResponse,
    TutorialCreate,
    TutorialUpdate,
)
from lifecraft.storage import StorageClient

router = APIRouter(dependencies=[Depends(require_admin)])


def _read_certificate(file: UploadFile) -> bytes:
    data = file.file.read()
    if not data:
        raise InvalidRequestError("Certificate file is empty")
    return data


def _upload_response(storage: StorageClient, path: str) -> CertificateUploadResponse:
    expires_in = get_settings().certificate_url_expiry_seconds
    return CertificateUploadResponse(path=path, url=storage.presign_get(path, expires_in=expires_in))


# -- overview -------------------------------------------------------------


@router.get("/stats")
def dashboard_stats(admin: AdminService = Depends(get_admin_service)):
    return admin.get_dashboard_stats()


@router.get("/participants")
def list_participants(
    search: Optional[str] = Query(default=None, max_length=200),
    admin: AdminService = Depends(get_admin_service),
):
    return admin.list_participants(search)


@router.get("/activity")
def recent_activity(
    limit: int = Query(default=10, ge=1, le=100),
    admin: AdminService = Depends(get_admin_service),
):
    return admin.get_recent_activity(limit)


@router.get("/drill-stats")
def drill_statistics(admin: AdminService = Depends(get_admin_service)):
    return admin.get_drill_statistics()


@router.get("/performance")
def performance_metrics(admin: AdminService = Depends(get_admin_service)):
    return admin.get_performance_metrics()


@router.get("/certified-drills")
def certified_drills(admin: AdminService = Depends(get_admin_service)):
    return admin.get_certified_drills()


# -- modules, lessons and questions ---------------------------------------


@router.post("/modules", status_code=201)
def create_module(payload: ModuleCreate, modules: ModuleService = Depends(get_module_service)):
    return modules.create_module(payload.model_dump())


@router.patch("/modules/{module_id}")
def update_module(
    module_id: str,
    payload: ModuleUpdate,
    modules: ModuleService = Depends(get_module_service),
):
    return modules.update_module(module_id, payload.model_dump(exclude_unset=True))


@router.delete("/modules/{module_id}", response_model=StatusResponse)
def delete_module(module_id: str, modules: ModuleService = Depends(get_module_service)):
    modules.delete_module(module_id)
    return StatusResponse()


@router.get("/modules/{module_id}/completed-users")
def module_completed_users(module_id: str, modules: ModuleService = Depends(get_module_service)):
    return modules.get_completed_users(module_id)


@router.post("/modules/{module_id}/reset/{user_id}", response_model=StatusResponse)
def reset_module_progress(
    module_id: str,
    user_id: str,
    modules: ModuleService = Depends(get_module_service),
):
    modules.reset_progress(user_id, module_id)
    return StatusResponse()


@router.post("/modules/{module_id}/lessons", status_code=201)
def create_lesson(
    module_id: str,
    payload: LessonCreate,
    modules: ModuleService = Depends(get_module_service),
):
    return modules.create_lesson(module_id, payload.model_dump())


@router.patch("/lessons/{lesson_id}")
def update_lesson(
    lesson_id: str,
    payload: LessonUpdate,
    modules: ModuleService = Depends(get_module_service),
):
    return modules.update_lesson(lesson_id, payload.model_dump(exclude_unset=True))


@router.delete("/lessons/{lesson_id}", response_model=StatusResponse)
def delete_lesson(lesson_id: str, modules: ModuleService = Depends(get_module_service)):
    modules.delete_lesson(lesson_id)
    return StatusResponse()


@router.post("/lessons/{lesson_id}/questions", status_code=201)
def create_question(
    lesson_id: str,
    payload: QuestionCreate,
    modules: ModuleService = Depends(get_module_service),
):
    return modules.create_question(lesson_id, payload.model_dump())


@router.patch("/questions/{question_id}")
def update_question(
    question_id: str,
    payload: QuestionUpdate,
    modules: ModuleService = Depends(get_module_service),
):
    return modules.update_question(question_id, payload.model_dump(exclude_unset=True))


@router.delete("/questions/{question_id}", response_model=StatusResponse)
def delete_question(question_id: str, modules: ModuleService = Depends(get_module_service)):
    modules.delete_question(question_id)
    return StatusResponse()


# -- drills ---------------------------------------------------------------


@router.post("/drills", status_code=201)
def create_drill(payload: DrillCreate, drills: DrillService = Depends(get_drill_service)):
    data = payload.model_dump(exclude={"pages"})
    pages = [page.model_dump() for page in payload.pages] if payload.pages else None
    return drills.create_drill(data, pages)


@router.patch("/drills/{drill_id}")
def update_drill(
    drill_id: str,
    payload: DrillUpdate,
    drills: DrillService = Depends(get_drill_service),
):
    data = payload.model_dump(exclude_unset=True, exclude={"pages"})
    pages = [page.model_dump() for page in payload.pages] if payload.pages is not None else None
    return drills.update_drill(drill_id, data, pages)


@router.delete("/drills/{drill_id}", response_model=StatusResponse)
def delete_drill(drill_id: str, drills: DrillService = Depends(get_drill_service)):
    drills.delete_drill(drill_id)
    return StatusResponse()


@router.get("/drill-registrations")
def list_drill_registrations(drills: DrillService = Depends(get_drill_service)):
    return drills.list_registrations()


@router.patch("/drill-registrations/{registration_id}")
def update_drill_registration(
    registration_id: str,
    payload: RegistrationStatusUpdate,
    drills: DrillService = Depends(get_drill_service),
):
    return drills.update_registration_status(registration_id, payload.status)


@router.post("/drill-registrations/{registration_id}/complete")
def complete_drill_registration(
    registration_id: str,
    drills: DrillService = Depends(get_drill_service),
):
    return drills.mark_physical_complete(registration_id)


@router.post(
    "/drill-registrations/{registration_id}/certificate",
    response_model=CertificateUploadResponse,
)
def upload_drill_certificate(
    registration_id: str,
    file: UploadFile = File(...),
    drills: DrillService = Depends(get_drill_service),
    storage: StorageClient = Depends(get_storage_client),
):
    path = drills.upload_certificate(registration_id, _read_certificate(file))
    return _upload_response(storage, path)


@router.post(
    "/drill-registrations/{registration_id}/send-email",
    response_model=NotificationResponse,
)
def send_drill_completion_email(
    registration_id: str,
    drills: DrillService = Depends(get_drill_service),
    mailer: Mailer = Depends(get_mailer),
):
    message_id = drills.send_completion_email(registration_id, mailer)
    return NotificationResponse(success=True, messageId=message_id)


# -- community sessions ---------------------------------------------------


@router.post("/sessions", status_code=201)
def create_session(
    payload: SessionCreate,
    community: CommunityService = Depends(get_community_service),
):
    return community.create_session(payload.model_dump())


@router.patch("/sessions/{session_id}")
def update_session(
    session_id: str,
    payload: SessionUpdate,
    community: CommunityService = Depends(get_community_service),
):
    return community.update_session(session_id, payload.model_dump(exclude_unset=True))


@router.delete("/sessions/{session_id}", response_model=StatusResponse)
def delete_session(
    session_id: str,
    community: CommunityService = Depends(get_community_service),
):
    community.delete_session(session_id)
    return StatusResponse()


@router.get("/session-registrations")
def list_session_registrations(community: CommunityService = Depends(get_community_service)):
    return community.list_registrations()


@router.patch("/session-registrations/{registration_id}")
def update_session_registration(
    registration_id: str,
    payload: RegistrationStatusUpdate,
    community: CommunityService = Depends(get_community_service),
):
    return community.update_registration_status(registration_id, payload.status)


@router.post("/session-registrations/{registration_id}/complete")
def complete_session_registration(
    registration_id: str,
    community: CommunityService = Depends(get_community_service),
):
    return community.mark_session_complete(registration_id)


@router.post(
    "/session-registrations/{registration_id}/certificate",
    response_model=CertificateUploadResponse,
)
def upload_session_certificate(
    registration_id: str,
    file: UploadFile = File(...),
    community: CommunityService = Depends(get_community_service),
    storage: StorageClient = Depends(get_storage_client),
):
    path = community.upload_certificate(registration_id, _read_certificate(file))
    return _upload_response(storage, path)


# -- first aid tutorials --------------------------------------------------


@router.post("/tutorials", status_code=201)
def create_tutorial(
    payload: TutorialCreate,
    first_aid: FirstAidService = Depends(get_first_aid_service),
):
    return first_aid.create_tutorial(payload.model_dump())


@router.patch("/tutorials/{tutorial_id}")
def update_tutorial(
    tutorial_id: str,
    payload: TutorialUpdate,
    first_aid: FirstAidService = Depends(get_first_aid_service),
):
    return first_aid.update_tutorial(tutorial_id, payload.model_dump(exclude_unset=True))


@router.delete("/tutorials/{tutorial_id}", response_model=StatusResponse)
def delete_tutorial(
    tutorial_id: str,
    first_aid: FirstAidService = Depends(get_first_aid_service),
):
    first_aid.delete_tutorial(tutorial_id)
    return StatusResponse()


@router.get("/tutorials/{tutorial_id}/completed-users")
def tutorial_completed_users(
    tutorial_id: str,
    first_aid: FirstAidService = Depends(get_first_aid_service),
):
    return first_aid.get_completed_users(tutorial_id)


@router.post(
    "/tutorials/{tutorial_id}/certificate/{user_id}",
    response_model=CertificateUploadResponse,
)
def upload_tutorial_certificate(
    tutorial_id: str,
    user_id: str,
    file: UploadFile = File(...),
    first_aid: FirstAidService = Depends(get_first_aid_service),
    storage: StorageClient = Depends(get_storage_client),
):
    path = first_aid.upload_certificate(user_id, tutorial_id, _read_certificate(file))
    return _upload_response(storage, path)
