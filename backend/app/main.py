"""
酒店入住后台主应用入口
前台发起入住会话，客人通过邮件中的入住码或链接自助完成入住
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import settings
from app.database import SessionLocal, init_db
from app.routers import auth, bookings, checkin, consents, employees
from app.services.checkin_session_service import CheckinSessionService

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时初始化数据库
    init_db()

    # 启动时清理已完全过期的入住会话
    db = SessionLocal()
    try:
        CheckinSessionService(db).expire_stale_sessions()
    finally:
        db.close()

    logger.info(f"{settings.APP_NAME} started")

    yield


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    description="酒店前台入住会话、自助入住与退房后台",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(auth.router)
app.include_router(bookings.router)
app.include_router(checkin.router)
app.include_router(consents.router)
app.include_router(employees.router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
