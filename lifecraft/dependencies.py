"""
Dependency wiring for the FastAPI app and the badge worker.
"""

from __future__ import annotations

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from lifecraft.admin import AdminService
from lifecraft.auth import AccountService, decode_token
from lifecraft.badges import BadgeService
from lifecraft.cache import Cache, InMemoryCache, RedisCache
from lifecraft.community import CommunityService
from lifecraft.config import get_settings
from lifecraft.dashboard import DashboardService
from lifecraft.db import Database, ProfileRow
from lifecraft.drills import DrillService
from lifecraft.errors import AuthenticationError, NotFoundError, PermissionDeniedError
from lifecraft.first_aid import FirstAidService
from lifecraft.mailer import Mailer
from lifecraft.modules import ModuleService
from lifecraft.queue import InMemoryJobQueue, JobQueue, RedisJobQueue
from lifecraft.recommendations import RecommendationService
from lifecraft.storage import InMemoryStorageClient, S3StorageClient, StorageClient

IN_MEMORY_DATABASE_URL = "sqlite+pysqlite:///:memory:"

_database: Database | None = None
_cache: Cache | None = None
_queue_client: JobQueue | None = None
_storage_client: StorageClient | None = None
_mailer: Mailer | None = None

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{get_settings().api_prefix}/auth/login", auto_error=False
)


def get_database() -> Database:
    """
    Return a singleton database so sessions share one engine across requests.
    """
    global _database
    if _database:
        return _database

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _database = Database(IN_MEMORY_DATABASE_URL)
    else:
        _database = Database(settings.database_url)
    return _database


def get_cache() -> Cache:
    global _cache
    if _cache:
        return _cache

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.redis_url:
        _cache = InMemoryCache()
    else:
        _cache = RedisCache(url=settings.redis_url)
    return _cache


def get_queue_client() -> JobQueue:
    """
    Return a singleton queue client for dispatching badge jobs to the worker.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.redis_url:
        _queue_client = InMemoryJobQueue()
    else:
        _queue_client = RedisJobQueue(
            url=settings.redis_url,
            queue_key=settings.badge_queue_name,
        )
    return _queue_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_mailer() -> Mailer:
    global _mailer
    if _mailer:
        return _mailer
    _mailer = Mailer(get_settings())
    return _mailer


def reset_backends() -> None:
    """Forget every singleton; the next request builds fresh backends."""
    global _database, _cache, _queue_client, _storage_client, _mailer
    _database = _cache = _queue_client = _storage_client = _mailer = None


# -- services -------------------------------------------------------------


def get_badge_service() -> BadgeService:
    return BadgeService(get_database(), get_cache(), get_queue_client(), get_settings())


def get_account_service() -> AccountService:
    return AccountService(get_database(), get_mailer(), get_settings())


def get_recommendation_service() -> RecommendationService:
    return RecommendationService(
        get_database(), get_cache(), get_badge_service(), settings=get_settings()
    )


def get_module_service() -> ModuleService:
    return ModuleService(get_database(), get_badge_service())


def get_drill_service() -> DrillService:
    return DrillService(get_database(), get_storage_client())


def get_community_service() -> CommunityService:
    return CommunityService(get_database(), get_storage_client())


def get_first_aid_service() -> FirstAidService:
    return FirstAidService(get_database(), get_storage_client())


def get_dashboard_service() -> DashboardService:
    return DashboardService(
        get_database(), get_badge_service(), get_storage_client(), get_settings()
    )


def get_admin_service() -> AdminService:
    return AdminService(get_database())


# -- auth -----------------------------------------------------------------


def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    accounts: AccountService = Depends(get_account_service),
) -> ProfileRow:
    if not token:
        raise AuthenticationError("Not authenticated")
    user_id = decode_token(token, get_settings())
    try:
        return accounts.get_profile(user_id)
    except NotFoundError as exc:
        raise AuthenticationError("Could not validate credentials") from exc


def require_admin(user: ProfileRow = Depends(get_current_user)) -> ProfileRow:
    if user.role != "admin":
        raise PermissionDeniedError("Admin access required")
    return user
